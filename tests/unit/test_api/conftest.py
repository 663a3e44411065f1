"""Shared fixtures for API tests: an isolated app per test, stubbed auth and DB."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from api_factories import TENANT_A
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from leadgen_service.api.app import create_app
from leadgen_service.api.deps import get_session, get_token_claims
from leadgen_service.config import Settings


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="testing",  # type: ignore[arg-type]
        rate_limit_create_rps=1000,
        rate_limit_list_rps=1000,
        bootstrap_schema=False,
    )


@pytest.fixture()
def app(test_settings: Settings) -> FastAPI:
    """Fresh app per test: limiters and metrics are never shared."""
    return create_app(test_settings)


@pytest.fixture()
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture()
def claims() -> dict[str, Any]:
    """Verified token claims; tests may edit them before sending requests."""
    return {"sub": "user-1", "tid": str(TENANT_A)}


@pytest.fixture()
async def client(
    app: FastAPI, mock_session: AsyncMock, claims: dict[str, Any]
) -> AsyncGenerator[AsyncClient]:
    app.dependency_overrides[get_session] = lambda: mock_session
    app.dependency_overrides[get_token_claims] = lambda: claims
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
        headers={"Authorization": "Bearer test-token"},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
