"""SQLAlchemy ORM models for all service-owned entities.

Tables are declared without a schema; the engine pins them to the
service schema through ``schema_translate_map`` (see ``storage.database``).
Every table carries a non-nullable, indexed ``tenant_id``.
"""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

import uuid_utils as uuid7_lib
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, INET, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Placeholder schema name for the monolith's tables; translated at runtime.
LEGACY_SCHEMA = "legacy"


def _uuid7() -> uuid.UUID:
    """Generate a UUIDv7 (time-ordered) for use as default PK value."""
    return uuid.UUID(bytes=uuid7_lib.uuid7().bytes)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class QrStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class CommissionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


# ──────────────────────────────────────────────
# QR tags & scans
# ──────────────────────────────────────────────


class QrTag(Base):
    __tablename__ = "qr_tags"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive')", name="ck_qr_tags_status"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    campaign_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    car_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    code: Mapped[str] = mapped_column(String(200), unique=True)
    status: Mapped[str] = mapped_column(String(16), default=QrStatus.ACTIVE)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class QrScan(Base):
    """A single recorded scan. Immutable after insert."""

    __tablename__ = "qr_scans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    qr_tag_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("qr_tags.id"), index=True
    )
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    ip: Mapped[str | None] = mapped_column(INET)
    ua: Mapped[str | None] = mapped_column(Text)
    geo_json: Mapped[dict[str, Any] | None] = mapped_column(JSONB)


# ──────────────────────────────────────────────
# Prospects & commissions
# ──────────────────────────────────────────────


class Prospect(Base):
    __tablename__ = "prospects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    qr_tag_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    campaign_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    assigned_agent_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    status: Mapped[str] = mapped_column(String(32), default="new", index=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Commission(Base):
    """Agent commission for a prospect. Amounts are integer minor units."""

    __tablename__ = "commissions"
    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_commissions_amount"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid')",
            name="ck_commissions_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    prospect_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("prospects.id"), index=True
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(
        String(16), default=CommissionStatus.PENDING, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ──────────────────────────────────────────────
# Idempotency
# ──────────────────────────────────────────────


class IdempotencyKey(Base):
    """Stored request hash and response body per (tenant, client key)."""

    __tablename__ = "idempotency_keys"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "idempotency_key", name="uq_idempotency_tenant_key"
        ),
        Index("idx_idemp_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=_uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    idempotency_key: Mapped[str] = mapped_column(Text)
    request_hash: Mapped[str] = mapped_column(String(64))
    # Rendered response text, replayed as stored.
    response_body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# ──────────────────────────────────────────────
# Legacy monolith tables (read only, never created here)
# ──────────────────────────────────────────────

legacy_metadata = MetaData(schema=LEGACY_SCHEMA)

cars = Table(
    "cars",
    legacy_metadata,
    Column("id", Uuid, primary_key=True),
    Column("current_driver_id", Uuid),
    Column("assignment_start", DateTime(timezone=True)),
    Column("assignment_end", DateTime(timezone=True)),
)

users = Table(
    "users",
    legacy_metadata,
    Column("id", Uuid, primary_key=True),
    Column("tenant_id", Uuid),
    Column("email", String(255)),
    Column("name", String(255)),
    Column("roles", ARRAY(Text)),
)
