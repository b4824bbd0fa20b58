"""Logging configuration for the Scheduling service.

Records carry their structured payload under ``extra_fields``. The JSON
formatter (production) merges it into the output object; the standard
formatter (development) appends it as ``key=value`` pairs so sync attempts
stay greppable by appointment id.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

from scheduling_service.config import get_settings

# Set by RequestIDMiddleware for the lifetime of one HTTP request
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_logger: Optional[logging.Logger] = None


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable lines for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id_var.get() or "-"
        line = super().format(record)

        fields = _extra_fields(record)
        if fields:
            pairs = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
            line = f"{line} | {pairs}"
        return line


def setup_logging() -> logging.Logger:
    """Configure the ``scheduling_service`` logger tree once per process."""
    global _logger

    if _logger is not None:
        return _logger

    settings = get_settings()

    logger = logging.getLogger("scheduling_service")
    logger.setLevel(getattr(logging, settings.log_level))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else StandardFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    # Broker and driver chatter
    for noisy in ("uvicorn.access", "aio_pika", "aiormq"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    _logger = logger
    logger.info(
        f"Logging configured: level={settings.log_level}, "
        f"environment={settings.environment.value}"
    )
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f"scheduling_service.{name}")
    return logging.getLogger("scheduling_service")


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **kwargs: Any,
) -> None:
    """Access log line for one HTTP request."""
    get_logger("http").info(
        f"{method} {path} - {status_code} - {duration_ms:.2f}ms",
        extra={
            "extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                **kwargs,
            }
        },
    )


def log_sync_attempt(
    operation: str,
    adapter: str,
    success: bool,
    appointment_id: Optional[str] = None,
    error: Optional[BaseException] = None,
) -> None:
    """Log one synchronization attempt against an external adapter.

    Mirrors the row written to ``appointment_sync_log``; failures are logged
    at WARNING so they surface without a traceback.
    """
    fields: Dict[str, Any] = {
        "operation": operation,
        "adapter": adapter,
        "success": success,
        "appointment_id": appointment_id,
    }
    if error is not None:
        fields["error_type"] = type(error).__name__
        fields["error_message"] = str(error)

    logger = get_logger("sync")
    if success:
        logger.info(f"{operation} synchronized via {adapter}", extra={"extra_fields": fields})
    else:
        logger.warning(f"{operation} failed via {adapter}: {error}", extra={"extra_fields": fields})


def log_error(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Log an unexpected error with its traceback.

    ``context`` keys (``appointment_id``, ``operation``, ``queue``...) are
    emitted as top-level structured fields.
    """
    get_logger("error").error(
        f"{type(error).__name__}: {error}",
        exc_info=error,
        extra={
            "extra_fields": {
                "error_type": type(error).__name__,
                "error_message": str(error),
                **(context or {}),
            }
        },
    )
