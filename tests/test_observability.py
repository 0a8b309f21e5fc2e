"""Unit tests for request logging.

Tests cover:
- LoggingMiddleware request id header and contextvar cleanup
- user id extraction from the bearer token
- configure_structlog in development and production modes
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.dealdesk.api.middleware import LoggingMiddleware
from src.dealdesk.api.middleware.logging import _user_id_from_header, configure_structlog
from src.dealdesk.config import Environment, Settings
from src.dealdesk.core.security import create_access_token


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)

    @app.get("/ping")
    async def ping():
        return {"request_id": structlog.contextvars.get_contextvars().get("request_id")}

    return app


async def test_request_id_header_matches_context():
    transport = ASGITransport(app=_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/ping")

    assert response.status_code == 200
    request_id = response.headers["X-Request-ID"]
    assert response.json()["request_id"] == request_id
    assert "request_id" not in structlog.contextvars.get_contextvars()


async def test_request_ids_are_unique():
    transport = ASGITransport(app=_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        first = await client.get("/ping")
        second = await client.get("/ping")
    assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


def test_user_id_from_valid_token():
    token = create_access_token({"sub": "user-42"})
    request = MagicMock()
    request.headers = {"Authorization": f"Bearer {token}"}
    assert _user_id_from_header(request) == "user-42"


def test_user_id_from_bad_token():
    request = MagicMock()
    request.headers = {"Authorization": "Bearer garbage"}
    assert _user_id_from_header(request) is None


def test_user_id_without_header():
    request = MagicMock()
    request.headers = {}
    assert _user_id_from_header(request) is None


def test_configure_structlog_production_renders_json():
    settings = Settings(ENVIRONMENT=Environment.production, LOG_LEVEL="warning")
    with patch("src.dealdesk.api.middleware.logging.get_settings", return_value=settings):
        configure_structlog()
    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.processors.JSONRenderer)
    structlog.reset_defaults()


def test_configure_structlog_development_renders_console():
    settings = Settings(ENVIRONMENT=Environment.development)
    with patch("src.dealdesk.api.middleware.logging.get_settings", return_value=settings):
        configure_structlog()
    processors = structlog.get_config()["processors"]
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
    structlog.reset_defaults()
