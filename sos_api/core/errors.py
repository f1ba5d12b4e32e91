"""Error taxonomy and FastAPI exception handlers.

Every service-layer failure is a ``ServiceError`` subclass tagged with an
``ErrorKind``. Routers let them propagate; the handlers registered here
render them as ``{"success": false, "error": kind, "message", "details"}``.
"""

import enum
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sos_api.logging_config import get_logger

logger = get_logger(__name__)


class ErrorKind(str, enum.Enum):
    """Machine-readable error category returned to clients."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    DEPENDENCY = "dependency_error"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal_error"


class ServiceError(Exception):
    """Base class for all expected service failures."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    """Malformed or out-of-range input."""

    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, *, field: str | None = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class NotFoundError(ServiceError):
    """Unknown alert, responder, contact or user ID."""

    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            f"{resource} not found",
            details={"resource": resource, **{k: str(v) for k, v in identifiers.items()}},
        )


class ForbiddenError(ServiceError):
    """Authenticated but not allowed to act on this alert."""

    kind = ErrorKind.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(ServiceError):
    """State-machine guard violation (double cancel, double accept...)."""

    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT


class DependencyError(ServiceError):
    """An external collaborator failed or timed out."""

    kind = ErrorKind.DEPENDENCY
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(
            f"External service '{service}' failed: {message}",
            details={"service": service, **details},
        )
        self.service = service
        self.reason = message


class TranscriptionError(DependencyError):
    """Speech-to-text service failed or returned an unusable result."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__("transcription", message, **details)


class NotificationChannelError(DependencyError):
    """Notification gateway rejected or failed a delivery."""

    def __init__(self, message: str = "", **details: Any):
        super().__init__("notification_channel", message, **details)


_STATUS_TO_KIND = {
    status.HTTP_401_UNAUTHORIZED: ErrorKind.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorKind.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    status.HTTP_409_CONFLICT: ErrorKind.CONFLICT,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ErrorKind.VALIDATION,
}


def error_body(
    kind: ErrorKind,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON envelope shared by every failed response."""
    return {
        "success": False,
        "error": kind.value,
        "message": message,
        "details": details or {},
    }


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers that render the error envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Request rejected",
            error=exc.kind.value,
            reason=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.kind, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                ErrorKind.VALIDATION, "Request validation failed", {"errors": errors}
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        kind = _STATUS_TO_KIND.get(exc.status_code, ErrorKind.INTERNAL)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(kind, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )
