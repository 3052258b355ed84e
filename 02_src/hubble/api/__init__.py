"""HTTP API module."""

from .app import create_fastapi_app, get_app, install_hubble

__all__ = ["create_fastapi_app", "get_app", "install_hubble"]
