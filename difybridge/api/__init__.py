"""FastAPI application factory for difybridge.

Provides the main application instance and factory function
for creating configured FastAPI apps.
"""

from difybridge.api.main import create_app, get_app

__all__ = [
    "create_app",
    "get_app",
]
