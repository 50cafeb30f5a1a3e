"""
Error handling tests.

CRITICAL: These tests verify that:
1. All errors return consistent shapes
2. Stack traces are never returned to clients
3. Correlation IDs are included in responses
"""

import pytest
from fastapi import FastAPI, HTTPException, status
from fastapi.testclient import TestClient

from prepx.platform.errors import (
    AppError,
    AuthenticationError,
    ErrorHandlerMiddleware,
    ServiceUnavailableError,
    ValidationError,
    app_error_handler,
)


class TestErrorClasses:

    def test_app_error_to_dict(self):
        error = AppError(code="TEST_ERROR", message="Test message", details={"extra": "info"})

        result = error.to_dict()

        assert result["error"]["code"] == "TEST_ERROR"
        assert result["error"]["message"] == "Test message"
        assert result["error"]["details"] == {"extra": "info"}

    def test_default_app_error_is_500(self):
        assert AppError(code="X", message="x").status_code == status.HTTP_500_INTERNAL_SERVER_ERROR

    @pytest.mark.parametrize("error, expected", [
        (ValidationError("bad"), 400),
        (AuthenticationError(), 401),
        (ServiceUnavailableError(), 503),
    ])
    def test_status_codes(self, error, expected):
        assert error.status_code == expected

    def test_default_messages(self):
        assert AuthenticationError().message == "Authentication required"
        assert ServiceUnavailableError("gate not configured").message == "gate not configured"

    def test_code_and_status_override(self):
        error = AppError("Webhook rejected", code="WEBHOOK_REJECTED", status_code=status.HTTP_401_UNAUTHORIZED)

        assert error.to_dict()["error"]["code"] == "WEBHOOK_REJECTED"
        assert error.status_code == 401
        assert AppError.code == "INTERNAL_ERROR"


class TestErrorHandlerMiddleware:

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(ErrorHandlerMiddleware)
        app.add_exception_handler(AppError, app_error_handler)

        @app.get("/ok")
        async def ok():
            return {"status": "ok"}

        @app.get("/app-error")
        async def raise_app_error():
            raise ValidationError("feature_slug is required", {"field": "feature_slug"})

        @app.get("/http-error")
        async def raise_http_error():
            raise HTTPException(status_code=400, detail="HTTP error detail")

        @app.get("/unexpected-error")
        async def raise_unexpected():
            raise RuntimeError("Unexpected internal error")

        return TestClient(app)

    def test_successful_request_has_correlation_id(self, client):
        response = client.get("/ok")

        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers

    def test_correlation_id_is_propagated(self, client):
        response = client.get("/ok", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["X-Correlation-ID"] == "corr-123"

    def test_app_error_returns_consistent_format(self, client):
        response = client.get("/app-error")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "VALIDATION_ERROR"
        assert data["error"]["details"]["field"] == "feature_slug"
        assert "X-Correlation-ID" in response.headers

    def test_http_exception_keeps_status(self, client):
        response = client.get("/http-error")

        assert response.status_code == 400

    def test_unexpected_error_returns_generic_message(self, client):
        """CRITICAL: Unexpected errors don't expose stack traces."""
        response = client.get("/unexpected-error")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "INTERNAL_ERROR"
        assert data["error"]["message"] == "An unexpected error occurred"
        assert "RuntimeError" not in str(data)
        assert "Unexpected internal error" not in str(data)
