"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from ..pipeline import HubbleMiddleware
from .routes import create_admin_router, create_logs_router


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def install_hubble(host_app: FastAPI, application: Application) -> None:
    """Capture a host app's traffic and mount the Hubble API on it.

    The host is responsible for calling application.start()/stop(), e.g.
    from its own lifespan; until then requests pass through untouched.
    """

    def current_pipeline():
        return application.pipeline if application.is_started else None

    host_app.add_middleware(HubbleMiddleware, get_pipeline=current_pipeline)
    host_app.include_router(create_logs_router(application))
    host_app.include_router(create_admin_router(application))


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create a standalone FastAPI application serving the Hubble API."""
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan."""
        # Startup
        await application.start()
        yield
        # Shutdown
        await application.stop()

    fastapi_app = FastAPI(
        title="Hubble API",
        description="Request capture, correlation and retention",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Enable CORS
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:5174"],  # Vite default
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_hubble(fastapi_app, application)
    return fastapi_app
