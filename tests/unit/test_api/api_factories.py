"""ORM row builders for API tests (transient instances, never flushed)."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from leadgen_service.storage.orm import Commission, Prospect, QrScan, QrTag

TENANT_A = uuid.UUID("00000000-0000-7000-8000-00000000000a")
TENANT_B = uuid.UUID("00000000-0000-7000-8000-00000000000b")


def make_tag(tenant_id: uuid.UUID = TENANT_A, **overrides: Any) -> QrTag:
    now = datetime.now(UTC)
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "tenant_id": tenant_id,
        "campaign_id": None,
        "car_id": None,
        "owner_user_id": None,
        "code": "PROMO-1",
        "status": "active",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return QrTag(**fields)


def make_scan(tag: QrTag, **overrides: Any) -> QrScan:
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "tenant_id": tag.tenant_id,
        "qr_tag_id": tag.id,
        "ts": datetime.now(UTC),
        "ip": "127.0.0.1",
        "ua": None,
        "geo_json": None,
    }
    fields.update(overrides)
    return QrScan(**fields)


def make_prospect(tenant_id: uuid.UUID = TENANT_A, **overrides: Any) -> Prospect:
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "tenant_id": tenant_id,
        "qr_tag_id": None,
        "campaign_id": None,
        "assigned_agent_id": None,
        "status": "new",
        "payload_json": {},
        "verified_at": None,
        "created_at": datetime.now(UTC),
    }
    fields.update(overrides)
    return Prospect(**fields)


def make_commission(tenant_id: uuid.UUID = TENANT_A, **overrides: Any) -> Commission:
    fields: dict[str, Any] = {
        "id": uuid.uuid4(),
        "tenant_id": tenant_id,
        "prospect_id": uuid.uuid4(),
        "agent_id": uuid.uuid4(),
        "amount_cents": 1500,
        "status": "pending",
        "created_at": datetime.now(UTC),
    }
    fields.update(overrides)
    return Commission(**fields)
