"""Correlation ID middleware.

Generates or propagates a correlation ID per request so every log line
written while answering it (including provider calls) can be tied together.
"""

import re
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.logging_config import correlation_id_ctx, get_logger

logger = get_logger(__name__)

# Header name for correlation ID
CORRELATION_ID_HEADER = "X-Correlation-ID"

# Inbound IDs are echoed into logs and headers; keep them short and plain
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _resolve_correlation_id(raw: bytes) -> str:
    """Reuse a well-formed inbound ID, otherwise mint a new UUID."""
    candidate = raw.decode("latin-1").strip()
    if candidate and _VALID_CORRELATION_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Pure ASGI middleware that adds correlation IDs to requests.

    The correlation ID is:
    - Taken from X-Correlation-ID when present and well-formed
    - Set in context for use throughout the request
    - Added to the response headers
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process ASGI request."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        correlation_id = _resolve_correlation_id(headers.get(b"x-correlation-id", b""))
        token = correlation_id_ctx.set(correlation_id)

        start_time = time.perf_counter()
        status_code: int | None = None
        method = scope.get("method", "")
        path = scope.get("path", "")

        logger.info("Request started", method=method, path=path)

        async def send_wrapper(message: Message) -> None:
            """Capture response status and add correlation header."""
            nonlocal status_code

            if message["type"] == "http.response.start":
                status_code = message.get("status")
                headers = list(message.get("headers", []))
                headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": headers}

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
            )
        except Exception:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round(duration_ms, 2),
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
