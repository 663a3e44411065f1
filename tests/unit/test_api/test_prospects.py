"""Tests for /v1/prospects endpoints."""

import uuid
from typing import Any
from unittest.mock import patch

from api_factories import make_prospect
from httpx import AsyncClient

from leadgen_service.services.idempotency import PROCEED, IdempotencyStore
from leadgen_service.storage.repositories import ProspectRepository


class TestCreateProspect:
    async def test_returns_201(self, client: AsyncClient, mock_session: Any) -> None:
        tag_id = uuid.uuid4()
        prospect = make_prospect(qr_tag_id=tag_id, payload_json={"phone": "+380"})
        with patch.object(
            ProspectRepository, "create", return_value=prospect
        ) as create:
            response = await client.post(
                "/v1/prospects",
                json={"qr_tag_id": str(tag_id), "payload_json": {"phone": "+380"}},
            )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["qr_tag_id"] == str(tag_id)
        assert data["payload_json"] == {"phone": "+380"}
        assert data["status"] == "new"
        assert create.call_args.kwargs["payload_json"] == {"phone": "+380"}
        mock_session.commit.assert_awaited_once()

    async def test_defaults(self, client: AsyncClient) -> None:
        with patch.object(
            ProspectRepository, "create", return_value=make_prospect()
        ) as create:
            await client.post("/v1/prospects", json={})
        kwargs = create.call_args.kwargs
        assert kwargs["status"] == "new"
        assert kwargs["payload_json"] == {}
        assert kwargs["qr_tag_id"] is None

    async def test_payload_must_be_object(self, client: AsyncClient) -> None:
        response = await client.post("/v1/prospects", json={"payload_json": [1, 2]})
        assert response.status_code == 400

    async def test_idempotency_key_is_stored(self, client: AsyncClient) -> None:
        with (
            patch.object(IdempotencyStore, "check", return_value=PROCEED),
            patch.object(IdempotencyStore, "persist") as persist,
            patch.object(ProspectRepository, "create", return_value=make_prospect()),
        ):
            await client.post(
                "/v1/prospects", json={}, headers={"Idempotency-Key": "lead-1"}
            )
        assert persist.call_args[0][0] == "lead-1"


class TestListProspects:
    async def test_returns_page(self, client: AsyncClient) -> None:
        rows = [make_prospect(), make_prospect()]
        with patch.object(
            ProspectRepository, "list_page", return_value=(rows, None)
        ) as list_page:
            response = await client.get("/v1/prospects?sort=status:asc")

        assert response.status_code == 200
        assert len(response.json()["data"]) == 2
        page = list_page.call_args[0][0]
        assert page.sort.field == "status"
        assert page.limit == 50

    async def test_unknown_sort_field_uses_default(self, client: AsyncClient) -> None:
        with patch.object(
            ProspectRepository, "list_page", return_value=([], None)
        ) as list_page:
            response = await client.get("/v1/prospects?sort=payload_json:asc")
        assert response.status_code == 200
        assert list_page.call_args[0][0].sort.field == "created_at"


class TestGetProspect:
    async def test_found(self, client: AsyncClient) -> None:
        prospect = make_prospect()
        with patch.object(ProspectRepository, "get_by_id", return_value=prospect):
            response = await client.get(f"/v1/prospects/{prospect.id}")
        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(prospect.id)

    async def test_not_found(self, client: AsyncClient) -> None:
        with patch.object(ProspectRepository, "get_by_id", return_value=None):
            response = await client.get(f"/v1/prospects/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Prospect not found"
