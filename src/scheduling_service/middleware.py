"""Custom middleware for FastAPI."""

import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from scheduling_service.config import get_settings
from scheduling_service.utils.logging import get_logger, log_request, set_request_id

logger = get_logger("middleware")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add request ID to all requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Middleware to log request processing time."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        # Probes would flood the access log
        if not request.url.path.startswith("/health"):
            log_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                client_ip=request.client.host if request.client else None,
            )

        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        return response


def setup_middleware(app: FastAPI) -> None:
    """Set up all middleware for the FastAPI application.

    Middleware executes in reverse order of registration: CORS first, then
    RequestID, then Timing.
    """
    settings = get_settings()

    app.add_middleware(TimingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origin_list,
        allow_credentials=False,
        allow_methods=settings.cors.method_list,
        allow_headers=settings.cors.header_list,
    )

    logger.info(f"Middleware configured: CORS (origins={settings.cors.origin_list}), RequestID, Timing")
