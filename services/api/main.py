"""
Main API service for Timely.
Provides REST endpoints for authentication, meeting drafts, meetings,
meeting types, availability, contacts and the user profile.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config import get_settings
from shared.errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    InvalidRequest,
    NetworkError,
    PersistenceError,
    ProviderApiError,
    TimelyError,
)

from .dao import set_dao_instance
from services.api.routes import auth, availability, contacts, drafts, meeting_types, meetings, profile
from services.timely.app import TimelyApp

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format=get_settings().log_format,
)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("motor").setLevel(logging.WARNING)
logging.getLogger("pymongo").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

settings = get_settings()

# Error type -> HTTP status
ERROR_STATUS = [
    (AuthenticationRequired, 401),
    (AuthenticationFailed, 401),
    (InvalidRequest, 400),
    (ProviderApiError, 502),
    (NetworkError, 503),
    (PersistenceError, 503),
]


def status_for_error(exc: TimelyError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_app(timely: Optional[TimelyApp] = None) -> FastAPI:
    """Build the FastAPI application around a ``TimelyApp``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting API service...")
        services = timely or TimelyApp(settings)
        try:
            await services.start()
            app.state.timely = services
            # Set the DAO instance for dependency injection
            set_dao_instance(services.dao)
            logger.info("API service initialized successfully")
            yield
        except Exception as e:
            logger.error(f"Failed to initialize API service: {e}")
            raise
        finally:
            logger.info("Shutting down API service...")
            await services.close()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="REST API for the Timely meeting scheduler",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    prefix = settings.api_prefix
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["authentication"])
    app.include_router(drafts.router, prefix=f"{prefix}/drafts", tags=["drafts"])
    app.include_router(meetings.router, prefix=f"{prefix}/meetings", tags=["meetings"])
    app.include_router(meeting_types.router, prefix=f"{prefix}/meeting-types", tags=["meeting-types"])
    app.include_router(availability.router, prefix=f"{prefix}/availability", tags=["availability"])
    app.include_router(contacts.router, prefix=f"{prefix}/contacts", tags=["contacts"])
    app.include_router(profile.router, prefix=f"{prefix}/profile", tags=["profile"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "api",
            "version": settings.app_version,
            "sandbox": settings.meeting_links_sandbox,
        }

    @app.exception_handler(TimelyError)
    async def timely_error_handler(request: Request, exc: TimelyError):
        status_code = status_for_error(exc)
        logger.warning(f"{request.method} {request.url.path} failed ({status_code}): {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "error": type(exc).__name__, "retryable": exc.retryable},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
