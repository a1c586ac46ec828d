"""
FastAPI API Service Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.dependencies import ERROR_STATUS_CODES
from api.routes import appointments, services, slots
from booking.transactions import BookingOrchestrator
from booking.validators import TemporalPolicy
from database.connection import create_engine_from_url, create_session_factory
from shared.config import get_settings
from shared.errors import BookingError, ErrorKind
from shared.logging_config import configure_logging
from shared.startup_validator import (
    StartupValidationError,
    validate_database_connection,
    validate_startup_config,
)

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

# Error labels for failures raised before a request reaches the booking core
HTTP_ERROR_LABELS = {
    401: "AUTHENTICATION",
    403: ErrorKind.AUTHORIZATION.value,
    404: ErrorKind.NOT_FOUND.value,
    405: "METHOD_NOT_ALLOWED",
}


def create_app(orchestrator: BookingOrchestrator | None = None) -> FastAPI:
    """
    Build the API application.

    Args:
        orchestrator: Pre-built orchestrator (tests). When omitted, the engine
            and orchestrator are created from settings during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = None
        if orchestrator is None:
            logger.info("Running API startup configuration validation...")
            try:
                validate_startup_config()
                logger.info("API startup configuration validation passed")
            except StartupValidationError as e:
                logger.critical(f"API startup blocked due to configuration errors: {e}")
                raise  # FastAPI will fail to start

            settings = get_settings()
            engine = create_engine_from_url(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
            app.state.orchestrator = BookingOrchestrator(
                create_session_factory(engine),
                policy=TemporalPolicy.from_settings(settings),
            )
        else:
            app.state.orchestrator = orchestrator

        yield

        if engine is not None:
            await engine.dispose()
            logger.info("Database engine disposed")

    app = FastAPI(
        title="Booking API",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Load settings for CORS configuration
    settings = get_settings()
    origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(appointments.router)
    app.include_router(slots.router)
    app.include_router(services.router)

    @app.exception_handler(BookingError)
    async def booking_exception_handler(request: Request, exc: BookingError) -> JSONResponse:
        """Render domain failures as {"error": kind, "message": text}."""
        status_code = ERROR_STATUS_CODES[exc.kind]
        if exc.kind == ErrorKind.INTERNAL:
            logger.error(f"Internal error on {request.url.path}", extra={"request_path": request.url.path})
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.kind.value, "message": exc.message},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Authentication and routing failures in the same shape as domain errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": HTTP_ERROR_LABELS.get(exc.status_code, "HTTP_ERROR"), "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 400 with validation error details."""
        return JSONResponse(
            status_code=400,
            content={
                "error": ErrorKind.VALIDATION.value,
                "message": "Invalid request",
                "details": jsonable_errors(exc),
            },
        )

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        """
        Health check endpoint for Docker health checks and monitoring.

        Returns:
            200 OK if the database answers SELECT 1
            503 Service Unavailable otherwise
        """
        connected = await validate_database_connection(request.app.state.orchestrator.session_factory)
        if connected:
            return JSONResponse(status_code=200, content={"status": "healthy", "database": "connected"})
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "disconnected"})

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Field errors without the raw input, which may not be JSON serialisable."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


app = create_app()
