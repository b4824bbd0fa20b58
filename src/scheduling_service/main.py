"""FastAPI application entry point.

This module creates and configures the FastAPI application instance with:
- Middleware (CORS, RequestID, Timing)
- Exception handlers (SchedulingException, HTTPException, validation, general)
- Scheduling and health routers
- Startup/shutdown lifecycle (adapter, resilience, database, RabbitMQ listener)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scheduling_service import __version__
from scheduling_service.adapters.registry import create_adapter
from scheduling_service.api.router import router as api_router
from scheduling_service.config import get_settings
from scheduling_service.database.session import close_db, get_session_context, init_db
from scheduling_service.messaging.appointment_listener import AppointmentListener
from scheduling_service.messaging.rabbitmq import RabbitMQService
from scheduling_service.middleware import setup_middleware
from scheduling_service.resilience.circuit_breaker import CircuitBreaker
from scheduling_service.resilience.retry import RetryExecutor
from scheduling_service.services.scheduling_service import SchedulingService
from scheduling_service.utils.errors import SchedulingException
from scheduling_service.utils.logging import get_logger, log_error, setup_logging

# Set up logging first
setup_logging()
logger = get_logger("main")

settings = get_settings()


async def start_messaging(app: FastAPI) -> None:
    """Connect to RabbitMQ and start the command consumers.

    Outside production a broker failure is logged and the HTTP API keeps
    running without events.
    """
    app.state.rabbitmq = None
    if not settings.rabbitmq.enabled:
        logger.warning("RabbitMQ disabled - events will not be published")
        return

    rabbitmq = RabbitMQService(settings.rabbitmq)
    adapter = app.state.adapter
    circuit_breaker = app.state.circuit_breaker
    retry_executor = app.state.retry_executor

    @asynccontextmanager
    async def service_scope() -> AsyncGenerator[SchedulingService, None]:
        async with get_session_context() as session:
            yield SchedulingService(session, adapter, circuit_breaker, retry_executor, publisher=rabbitmq)

    try:
        await rabbitmq.connect()
        await AppointmentListener(rabbitmq, service_scope, settings.rabbitmq).start()
    except SchedulingException as e:
        if settings.is_production:
            raise
        logger.error(f"RabbitMQ unavailable, continuing without messaging: {e.message}")
        await rabbitmq.close()
        return

    app.state.rabbitmq = rabbitmq


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events.

    Handles startup and shutdown of:
    - Scheduling adapter, circuit breaker and retry executor (process-wide)
    - Database engine
    - RabbitMQ connection and appointment listeners
    """
    logger.info("Starting Scheduling service...")
    try:
        app.state.adapter = create_adapter(settings.adapter)
        app.state.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.circuit_breaker.failure_threshold,
            success_threshold=settings.circuit_breaker.success_threshold,
            timeout=settings.circuit_breaker.timeout_seconds,
        )
        app.state.retry_executor = RetryExecutor.from_settings()

        await init_db()
        await start_messaging(app)

        logger.info("Scheduling service started successfully")
        yield
    except Exception as e:
        logger.error(f"Failed to start Scheduling service: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down Scheduling service...")
        rabbitmq = getattr(app.state, "rabbitmq", None)
        if rabbitmq is not None:
            try:
                await rabbitmq.close()
            except Exception as e:
                logger.error(f"Error closing RabbitMQ connection: {e}", exc_info=True)
        await close_db()
        logger.info("Scheduling service shut down successfully")


async def scheduling_exception_handler(request: Request, exc: SchedulingException) -> JSONResponse:
    """Handle custom service exceptions."""
    if exc.status_code >= 500:
        log_error(
            exc,
            context={
                "method": request.method,
                "path": request.url.path,
                "status_code": exc.status_code,
                "code": exc.code,
            },
        )
    else:
        logger.warning(f"{exc.code}: {request.method} {request.url.path} - {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (404, 405, etc.)."""
    logger.warning(f"{exc.status_code}: {request.method} {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "code": "HTTP_ERROR",
                "status_code": exc.status_code,
                "details": {},
            }
        },
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors as 400."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "message": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]

    logger.warning(
        f"Validation error: {request.method} {request.url.path}",
        extra={"validation_errors": errors},
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "message": "Validation failed",
                "code": "VALIDATION_ERROR",
                "status_code": 400,
                "details": {"validation_errors": errors},
            }
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    log_error(
        exc,
        context={"method": request.method, "path": request.url.path, "unhandled": True},
    )

    message = "An internal server error occurred" if settings.is_production else str(exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": message,
                "code": "INTERNAL_SERVER_ERROR",
                "status_code": 500,
                "details": {} if settings.is_production else {"exception_type": type(exc).__name__},
            }
        },
    )


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Scheduling Service",
        description=(
            "Synchronizes appointments with external scheduling systems through "
            "pluggable adapters, with circuit breaking, retries and an audit trail."
        ),
        version=__version__,
        docs_url="/docs" if settings.debug or settings.is_development else None,
        redoc_url=None,
        debug=settings.debug,
        lifespan=lifespan,
    )

    setup_middleware(app)
    app.include_router(api_router)

    app.add_exception_handler(SchedulingException, scheduling_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    @app.get("/", tags=["info"])
    async def root():
        """Service information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "environment": settings.environment.value,
            "adapter": settings.adapter.type.value,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "scheduling_service.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
        log_level=settings.log_level.lower(),
    )
