"""Shared FastAPI dependencies.

Provides common dependency callables used across route modules.
"""

from fastapi import Request

from difybridge.dify import DifyClient
from difybridge.settings import Settings


def get_dify_client(request: Request) -> DifyClient:
    """Return the process-wide Dify client created by ``create_app``."""
    return request.app.state.dify


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was built with."""
    return request.app.state.settings
