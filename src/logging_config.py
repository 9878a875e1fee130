"""Structured logging configuration.

Every log line carries the service name and, inside a request, the
correlation ID set by CorrelationIdMiddleware. Provider calls attach their
own fields (provider, model, endpoint, status) through ``**extra_fields``.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

DEFAULT_SERVICE_NAME = "classius-api"

# Set per request by CorrelationIdMiddleware
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Loggers that report every outbound provider request at INFO
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class _ServiceFormatter(logging.Formatter):
    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name


class JsonFormatter(_ServiceFormatter):
    """One JSON object per line.

    Keys: timestamp, level, service, message, logger, correlation_id (when
    set), any extra fields, exception (when present) and, for ERROR and
    above, the source location.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "logger": record.name,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(_ServiceFormatter):
    """Human-readable formatter for development.

    Format: timestamp - service - level - [correlation_id] - message key=value...
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        parts = [
            f"{timestamp} - {self.service_name} - {record.levelname} - "
            f"[{correlation_id_ctx.get() or '-'}] - {record.getMessage()}"
        ]
        parts.extend(f"{key}={value}" for key, value in _extra_fields(record).items())
        line = " ".join(parts)

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_format: 'json' for structured logging, 'text' for human-readable
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        service_name: Service name to include in logs
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter_cls = JsonFormatter if log_format.lower() == "json" else TextFormatter

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(service_name=service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """Logger wrapper whose methods accept keyword fields.

    ``logger.warning("Provider call failed", provider="openai", status_code=502)``
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(
        self, level: int, msg: str, extra_fields: dict[str, Any], exc_info: bool = False
    ) -> None:
        extra = {"extra_fields": extra_fields} if extra_fields else None
        # stacklevel=3 attributes the record to the caller, not this wrapper
        self._logger.log(level, msg, exc_info=exc_info, extra=extra, stacklevel=3)

    def debug(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.DEBUG, msg, extra_fields)

    def info(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.INFO, msg, extra_fields)

    def warning(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.WARNING, msg, extra_fields)

    def error(self, msg: str, **extra_fields: Any) -> None:
        self._log(logging.ERROR, msg, extra_fields)

    def exception(self, msg: str, **extra_fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, extra_fields, exc_info=True)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return StructuredLogger(name)
