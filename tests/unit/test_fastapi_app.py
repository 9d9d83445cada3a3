"""Unit tests for FastAPI application setup.

Tests cover:
- Application factory creates FastAPI instance
- CORS middleware is configured correctly
- Request logging middleware is active
- Health endpoints return expected responses
- Readiness endpoint verifies database connectivity
- Typed rejections and unexpected errors are mapped to JSON responses
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from httpx import ASGITransport, AsyncClient

from workboard.config import WebConfig, WorkboardConfig
from workboard.errors import ConflictError, NotFoundError
from workboard.web.app import create_app
from workboard.web.middleware import RequestLoggingMiddleware


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    )


class TestCreateApp:
    """Test application factory function."""

    def test_returns_fastapi_instance(self) -> None:
        app = create_app()
        assert isinstance(app, FastAPI)

    def test_app_metadata(self) -> None:
        app = create_app()
        assert app.title == "Workboard"
        assert app.version == "0.1.0"

    def test_app_stores_config_in_state(self) -> None:
        config = WorkboardConfig()
        app = create_app(config)
        assert app.state.config is config

    def test_uses_default_config_when_none_provided(self) -> None:
        app = create_app()
        assert isinstance(app.state.config, WorkboardConfig)


class TestMiddleware:
    """Test middleware configuration."""

    def test_cors_uses_config_origins(self) -> None:
        origins = ["https://app.example.com", "https://admin.example.com"]
        app = create_app(WorkboardConfig(web=WebConfig(cors_origins=origins)))

        [cors] = [m for m in app.user_middleware if m.cls == CORSMiddleware]
        assert cors.kwargs["allow_origins"] == origins
        assert cors.kwargs["allow_credentials"] is True

    def test_logging_middleware_is_registered(self) -> None:
        app = create_app()

        assert any(m.cls == RequestLoggingMiddleware for m in app.user_middleware)


class TestHealthEndpoints:
    """Test health and readiness endpoints."""

    @pytest.fixture
    def app_with_healthy_db(self) -> FastAPI:
        """App whose session factory yields a session that answers queries."""
        app = create_app()
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(return_value=MagicMock())

        mock_session_factory = MagicMock()
        mock_session_factory.return_value.__aenter__ = AsyncMock(return_value=mock_session)
        mock_session_factory.return_value.__aexit__ = AsyncMock(return_value=None)

        app.state.session_factory = mock_session_factory
        return app

    @pytest.fixture
    def app_with_unhealthy_db(self) -> FastAPI:
        app = create_app()
        mock_session_factory = MagicMock()
        mock_session_factory.return_value.__aenter__ = AsyncMock(
            side_effect=Exception("Database connection failed")
        )
        mock_session_factory.return_value.__aexit__ = AsyncMock(return_value=None)

        app.state.session_factory = mock_session_factory
        return app

    @pytest.mark.asyncio
    async def test_health(self, app_with_healthy_db: FastAPI) -> None:
        async with _client(app_with_healthy_db) as client:
            response = await client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_readiness_when_db_healthy(self, app_with_healthy_db: FastAPI) -> None:
        async with _client(app_with_healthy_db) as client:
            response = await client.get("/health/ready")

        data = response.json()
        assert data["status"] == "ok"
        assert data["database"] == "connected"
        assert data["outbox"] == {"pending": 0, "delivered": 0, "failed": 0, "total": 0}

    @pytest.mark.asyncio
    async def test_readiness_when_db_fails(self, app_with_unhealthy_db: FastAPI) -> None:
        async with _client(app_with_unhealthy_db) as client:
            response = await client.get("/health/ready")

        # Still 200; the body carries the status
        assert response.status_code == 200
        assert response.json() == {
            "status": "unhealthy",
            "database": "disconnected",
            "outbox": None,
        }


class TestCorrelationId:
    """Test correlation ID handling in middleware."""

    @pytest.mark.asyncio
    async def test_response_includes_correlation_id(self) -> None:
        async with _client(create_app()) as client:
            response = await client.get("/health/")

        assert "X-Correlation-ID" in response.headers

    @pytest.mark.asyncio
    async def test_response_echoes_provided_correlation_id(self) -> None:
        async with _client(create_app()) as client:
            response = await client.get("/health/", headers={"X-Correlation-ID": "corr-123"})

        assert response.headers["X-Correlation-ID"] == "corr-123"


class TestErrorHandlers:
    """Test mapping of exceptions to responses."""

    @pytest.fixture
    def app(self) -> FastAPI:
        app = create_app()

        @app.get("/boom/missing")
        async def missing() -> None:
            raise NotFoundError("Board", "b-1", "Không tìm thấy bảng")

        @app.get("/boom/conflict")
        async def conflict() -> None:
            raise ConflictError("Thứ tự đã thay đổi", board_id="b-1")

        @app.get("/boom/crash")
        async def crash() -> None:
            raise RuntimeError("secret connection string")

        return app

    @pytest.mark.asyncio
    async def test_typed_rejection(self, app: FastAPI) -> None:
        async with _client(app) as client:
            response = await client.get("/boom/missing")

        assert response.status_code == 404
        assert response.json() == {"message": "Không tìm thấy bảng", "code": "not_found"}

    @pytest.mark.asyncio
    async def test_details_are_not_rendered(self, app: FastAPI) -> None:
        async with _client(app) as client:
            response = await client.get("/boom/conflict")

        assert response.status_code == 409
        assert response.json() == {"message": "Thứ tự đã thay đổi", "code": "conflict"}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic(self, app: FastAPI) -> None:
        async with _client(app) as client:
            response = await client.get("/boom/crash")

        assert response.status_code == 500
        assert response.json()["code"] == "internal_error"
        assert "secret" not in response.text


class TestRouterRegistration:
    """Test that routers are properly registered."""

    @pytest.mark.parametrize(
        "path",
        [
            "/health/",
            "/health/ready",
            "/projects/{project_id}/workflow/approve-completed",
            "/boards/{board_id}/lists/order",
            "/cards/{card_id}/move",
            "/tasks/cards",
            "/events/stream",
            "/files/{path:path}",
        ],
    )
    def test_route_exists(self, path: str) -> None:
        app = create_app()

        assert path in [route.path for route in app.routes]
