"""Request/response schemas for the API layer."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    StrictInt,
    field_validator,
    model_validator,
)

from leadgen_service.api.envelope import SuccessEnvelope
from leadgen_service.storage.orm import CommissionStatus, QrStatus

# --- QR tags ---


class QrTagCreateRequest(BaseModel):
    """Request body for POST /qrcodes."""

    code: str = Field(..., min_length=1, max_length=200)
    status: QrStatus = QrStatus.ACTIVE
    campaign_id: uuid.UUID | None = None
    car_id: uuid.UUID | None = None
    owner_user_id: uuid.UUID | None = None


class QrTagUpdateRequest(BaseModel):
    """Request body for PATCH /qrcodes/{id}. Only sent fields change."""

    status: QrStatus | None = None
    campaign_id: uuid.UUID | None = None
    car_id: uuid.UUID | None = None
    owner_user_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _not_empty(self) -> QrTagUpdateRequest:
        if not self.model_fields_set:
            raise ValueError("at least one field must be provided")
        if "status" in self.model_fields_set and self.status is None:
            raise ValueError("status cannot be null")
        return self


class QrTagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    campaign_id: uuid.UUID | None
    car_id: uuid.UUID | None
    owner_user_id: uuid.UUID | None
    code: str
    status: str
    created_at: datetime
    updated_at: datetime


# --- Scans ---


class ScanCreateRequest(BaseModel):
    """Request body for POST /scans.

    ``ip`` and ``ua`` default to the caller's address and User-Agent.
    """

    qr_tag_id: uuid.UUID
    ip: IPvAnyAddress | None = None
    ua: str | None = Field(default=None, max_length=1024)
    geo: dict[str, Any] | None = None


class ScanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    qr_tag_id: uuid.UUID
    ts: datetime
    ip: str | None
    ua: str | None
    geo_json: dict[str, Any] | None

    @field_validator("ip", mode="before")
    @classmethod
    def _ip_as_text(cls, value: Any) -> str | None:
        # psycopg loads INET as ipaddress objects
        return None if value is None else str(value)


class AttributionResponse(BaseModel):
    car_id: uuid.UUID | None = None
    driver_id: uuid.UUID | None = None


class ScanEnvelope(SuccessEnvelope[ScanResponse]):
    """Scan envelope; ``attribution`` is response-side only, never persisted."""

    attribution: AttributionResponse = Field(default_factory=AttributionResponse)


# --- Prospects ---


class ProspectCreateRequest(BaseModel):
    """Request body for POST /prospects."""

    qr_tag_id: uuid.UUID | None = None
    campaign_id: uuid.UUID | None = None
    assigned_agent_id: uuid.UUID | None = None
    status: str = Field(default="new", min_length=1, max_length=32)
    payload_json: dict[str, Any] = Field(default_factory=dict)
    verified_at: datetime | None = None


class ProspectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    qr_tag_id: uuid.UUID | None
    campaign_id: uuid.UUID | None
    assigned_agent_id: uuid.UUID | None
    status: str
    payload_json: dict[str, Any]
    verified_at: datetime | None
    created_at: datetime


# --- Commissions ---


class CommissionCreateRequest(BaseModel):
    """Request body for POST /commissions.

    ``amount_cents`` is an integer number of minor currency units;
    fractional values are rejected.
    """

    prospect_id: uuid.UUID
    agent_id: uuid.UUID
    amount_cents: StrictInt = Field(..., ge=0)
    status: CommissionStatus = CommissionStatus.PENDING


class CommissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    prospect_id: uuid.UUID
    agent_id: uuid.UUID
    amount_cents: int
    status: str
    created_at: datetime


# --- Agents ---


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str | None
    name: str | None
