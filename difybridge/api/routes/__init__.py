"""API route registration.

Aggregates all API routers into a single router
for inclusion in the main application.
"""

from fastapi import APIRouter

from difybridge.api.routes.openai_compat import router as openai_router

# Main API router, mounted under /v1
api_router = APIRouter()

api_router.include_router(openai_router)
