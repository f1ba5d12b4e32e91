"""Correlation ID middleware.

Tags each request with a correlation ID, echoes it back in the response
headers and logs request start and completion.

Pure ASGI rather than BaseHTTPMiddleware, which does not play well with
asyncpg connections.
"""

import re
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from sos_api.logging_config import correlation_id_ctx, get_logger, log_context

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Incoming IDs that don't match are replaced with a fresh UUID
_VALID_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_correlation_id(raw: bytes | None) -> str:
    """Use the caller's correlation ID if it is well-formed, else mint one."""
    if raw:
        candidate = raw.decode("latin-1").strip()
        if _VALID_CORRELATION_ID.match(candidate):
            return candidate
    return str(uuid.uuid4())


class CorrelationIdMiddleware:
    """Pure ASGI middleware that adds correlation IDs to HTTP requests.

    The request method and path are bound to every log record emitted while
    the request is handled.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        correlation_id = resolve_correlation_id(headers.get(b"x-correlation-id"))
        token = correlation_id_ctx.set(correlation_id)

        start_time = time.perf_counter()
        status_code: int | None = None
        method = scope.get("method", "")
        path = scope.get("path", "")

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                response_headers = list(message.get("headers", []))
                response_headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": response_headers}
            await send(message)

        try:
            with log_context(method=method, path=path):
                logger.debug("Request started")
                try:
                    await self.app(scope, receive, send_wrapper)
                except Exception:
                    logger.exception(
                        "Request failed",
                        duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    )
                    raise

                duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
                if status_code is not None and status_code >= 500:
                    logger.warning(
                        "Request completed with server error",
                        status_code=status_code,
                        duration_ms=duration_ms,
                    )
                else:
                    logger.info(
                        "Request completed",
                        status_code=status_code,
                        duration_ms=duration_ms,
                    )
        finally:
            correlation_id_ctx.reset(token)
