"""Tests for the error envelope and correlation ID middleware."""

import uuid

import pytest

from sos_api.core.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    TranscriptionError,
    ValidationError,
    error_body,
)
from sos_api.middleware import CORRELATION_ID_HEADER
from sos_api.middleware.correlation import resolve_correlation_id


class TestErrorTypes:
    """ServiceError subclasses carry kind, status and details."""

    def test_validation_error_field(self):
        exc = ValidationError("Latitude out of range", field="latitude", value=91.0)

        assert exc.kind == ErrorKind.VALIDATION
        assert exc.status_code == 422
        assert exc.details == {"field": "latitude", "value": 91.0}

    def test_not_found_stringifies_ids(self):
        alert_id = uuid.uuid4()

        exc = NotFoundError("Alert", alert_id=alert_id)

        assert exc.message == "Alert not found"
        assert exc.details == {"resource": "Alert", "alert_id": str(alert_id)}

    def test_transcription_error_is_dependency_error(self):
        exc = TranscriptionError("timeout")

        assert exc.kind == ErrorKind.DEPENDENCY
        assert exc.status_code == 502
        assert exc.reason == "timeout"
        assert exc.details["service"] == "transcription"

    def test_conflict_status(self):
        assert ConflictError("Alert already canceled").status_code == 409

    def test_error_body(self):
        assert error_body(ErrorKind.NOT_FOUND, "Alert not found") == {
            "success": False,
            "error": "not_found",
            "message": "Alert not found",
            "details": {},
        }


class TestResolveCorrelationId:
    """Incoming correlation IDs are kept only when well-formed."""

    def test_keeps_valid_id(self):
        assert resolve_correlation_id(b"req-123.abc:7") == "req-123.abc:7"

    def test_replaces_invalid_id(self):
        generated = resolve_correlation_id(b"bad id\nwith newline")

        assert uuid.UUID(generated)

    def test_generates_when_missing(self):
        assert uuid.UUID(resolve_correlation_id(None))
        assert uuid.UUID(resolve_correlation_id(b""))


class TestCorrelationMiddleware:
    """Correlation ID echo over HTTP."""

    @pytest.mark.asyncio
    async def test_echoes_caller_id(self, client):
        response = await client.get("/health/live", headers={CORRELATION_ID_HEADER: "trace-42"})

        assert response.headers[CORRELATION_ID_HEADER] == "trace-42"

    @pytest.mark.asyncio
    async def test_mints_id_when_absent(self, client):
        response = await client.get("/health/live")

        assert uuid.UUID(response.headers[CORRELATION_ID_HEADER])

    @pytest.mark.asyncio
    async def test_error_responses_carry_id(self, client):
        response = await client.get(f"/api/sos/alerts/{uuid.uuid4()}")

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"
        assert CORRELATION_ID_HEADER in response.headers
