"""Tests for probes, the metrics snapshot and the agent directory."""

import uuid
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from api_factories import make_tag
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from leadgen_service.api.app import create_app
from leadgen_service.config import Settings
from leadgen_service.storage.repositories import AgentRepository, QrTagRepository


def _session_factory(execute: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value.execute = execute
    return factory


class TestHealth:
    async def test_liveness(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "ok"
        assert data["service"] == "leadgen"
        assert "timestamp" in data

    async def test_ready_when_db_answers(
        self, app: FastAPI, client: AsyncClient
    ) -> None:
        execute = AsyncMock()
        app.state.session_factory = _session_factory(execute)
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["data"] == {"db": "ok"}
        execute.assert_awaited_once()

    async def test_not_ready_when_db_down(
        self, app: FastAPI, client: AsyncClient
    ) -> None:
        execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("refused"))
        )
        app.state.session_factory = _session_factory(execute)
        response = await client.get("/health/ready")
        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"]["type"] == "unavailable"
        assert "refused" not in response.text


class TestAppSettings:
    def test_engine_uses_injected_schemas(self) -> None:
        cfg = Settings(
            _env_file=None,
            pg_schema="leadgen_alt",
            legacy_schema="monolith",
            bootstrap_schema=False,
        )
        app = create_app(cfg)
        options = app.state.engine.sync_engine.get_execution_options()
        assert options["schema_translate_map"] == {
            None: "leadgen_alt",
            "legacy": "monolith",
        }
        assert app.state.session_factory.kw["bind"] is app.state.engine


class TestMetricsEndpoint:
    async def test_counts_by_route_template(self, client: AsyncClient) -> None:
        with patch.object(QrTagRepository, "get_by_id", return_value=make_tag()):
            await client.get(f"/v1/qrcodes/{uuid.uuid4()}")
            await client.get(f"/v1/qrcodes/{uuid.uuid4()}")
        with patch.object(QrTagRepository, "get_by_id", return_value=None):
            await client.get(f"/v1/qrcodes/{uuid.uuid4()}")

        data = (await client.get("/metrics")).json()["data"]
        stats = data["GET /v1/qrcodes/{qr_id}"]
        assert stats["count"] == 3
        assert stats["error_count"] == 1
        assert stats["p95_ms"] >= 0

    async def test_request_id_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"x-request-id": "req-42"})
        assert response.headers["x-request-id"] == "req-42"


class TestAgents:
    async def test_lists_agents(self, client: AsyncClient) -> None:
        rows: list[dict[str, Any]] = [
            {"id": uuid.uuid4(), "email": "a@example.com", "name": "Ann"},
            {"id": uuid.uuid4(), "email": None, "name": None},
        ]
        with patch.object(AgentRepository, "list_all", return_value=rows):
            response = await client.get("/v1/agents")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [a["name"] for a in data] == ["Ann", None]
        assert data[0]["id"] == str(rows[0]["id"])

    async def test_requires_tenant(
        self, client: AsyncClient, claims: dict[str, Any]
    ) -> None:
        claims.pop("tid")
        response = await client.get("/v1/agents")
        assert response.status_code == 403
