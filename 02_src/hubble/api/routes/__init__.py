"""API routes."""

from .admin import create_admin_router
from .logs import create_logs_router

__all__ = ["create_admin_router", "create_logs_router"]
