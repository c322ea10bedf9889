"""
Unit tests for API middleware
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.middleware import RateLimitMiddleware, setup_exception_handlers, ErrorHandlingMiddleware
from utils.exceptions import NotFoundError, ErrorCodes


def _make_app(limit: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_per_minute=limit)
    app.add_middleware(ErrorHandlingMiddleware)
    setup_exception_handlers(app)

    @app.get("/api/ping")
    async def ping():
        return {"success": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/api/missing")
    async def missing():
        raise NotFoundError("Quote with ID 1 not found", ErrorCodes.QUOTE_NOT_FOUND, {"quote_id": 1})

    return app


@pytest.mark.unit
class TestRateLimitMiddleware:
    """Test cases for per-client rate limiting"""

    def test_limit_exceeded(self):
        client = TestClient(_make_app(limit=2))

        assert client.get("/api/ping").status_code == 200
        assert client.get("/api/ping").status_code == 200

        response = client.get("/api/ping")
        assert response.status_code == 429
        assert response.json()["error_code"] == "RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) >= 1

    def test_non_api_paths_not_limited(self):
        client = TestClient(_make_app(limit=1))

        for _ in range(3):
            assert client.get("/health").status_code == 200

    def test_zero_disables_limit(self):
        client = TestClient(_make_app(limit=0))

        for _ in range(5):
            assert client.get("/api/ping").status_code == 200


@pytest.mark.unit
class TestErrorEnvelope:
    """Test cases for business error responses"""

    def test_business_error_includes_context(self):
        client = TestClient(_make_app(limit=0))

        response = client.get("/api/missing")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "Quote with ID 1 not found",
            "error_code": ErrorCodes.QUOTE_NOT_FOUND,
            "context": {"quote_id": 1},
        }
