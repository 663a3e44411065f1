"""Tenant-scoped repositories for service-owned tables.

Every statement issued here carries a ``tenant_id`` predicate. The store
does not partition by tenant, so this module is the isolation boundary.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.errors import DuplicateCode
from leadgen_service.storage.orm import (
    Commission,
    Prospect,
    QrScan,
    QrStatus,
    QrTag,
    users,
)
from leadgen_service.storage.pagination import (
    PageRequest,
    SortableFields,
    SortDirection,
    SortSpec,
    apply_page,
    split_page,
)

QR_TAG_SORT = SortableFields(
    columns={
        "created_at": QrTag.created_at,
        "updated_at": QrTag.updated_at,
        "code": QrTag.code,
        "status": QrTag.status,
    },
    id_column=QrTag.id,
    default=SortSpec("created_at", SortDirection.DESC),
)

PROSPECT_SORT = SortableFields(
    columns={
        "created_at": Prospect.created_at,
        "status": Prospect.status,
    },
    id_column=Prospect.id,
    default=SortSpec("created_at", SortDirection.DESC),
)

COMMISSION_SORT = SortableFields(
    columns={
        "created_at": Commission.created_at,
        "amount_cents": Commission.amount_cents,
        "status": Commission.status,
    },
    id_column=Commission.id,
    default=SortSpec("created_at", SortDirection.DESC),
)

AGENT_ROLE = "agent"


class _TenantScoped:
    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID) -> None:
        self._session = session
        self._tenant_id = tenant_id


class QrTagRepository(_TenantScoped):
    """QR tag create/read/update, scoped to one tenant."""

    async def create(
        self,
        *,
        code: str,
        status: str = QrStatus.ACTIVE,
        campaign_id: uuid.UUID | None = None,
        car_id: uuid.UUID | None = None,
        owner_user_id: uuid.UUID | None = None,
    ) -> QrTag:
        """Insert a tag for the current tenant.

        Raises:
            DuplicateCode: another tag (of any tenant) already uses ``code``.
        """
        tag = QrTag(
            tenant_id=self._tenant_id,
            code=code,
            status=status,
            campaign_id=campaign_id,
            car_id=car_id,
            owner_user_id=owner_user_id,
        )
        self._session.add(tag)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            if "code" in str(exc.orig):
                raise DuplicateCode() from exc
            raise
        return tag

    async def get_by_id(self, tag_id: uuid.UUID) -> QrTag | None:
        stmt = select(QrTag).where(
            QrTag.id == tag_id,
            QrTag.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def update(self, tag_id: uuid.UUID, **changes: Any) -> QrTag | None:
        """Apply field changes to a tenant's tag.

        Returns:
            The updated tag, or None if it does not exist for this tenant.
        """
        tag = await self.get_by_id(tag_id)
        if tag is None:
            return None
        for name, value in changes.items():
            setattr(tag, name, value)
        tag.updated_at = datetime.now(UTC)
        await self._session.flush()
        return tag

    async def list_page(self, page: PageRequest) -> tuple[list[QrTag], str | None]:
        stmt = select(QrTag).where(QrTag.tenant_id == self._tenant_id)
        result = await self._session.execute(apply_page(stmt, page, QR_TAG_SORT))
        return split_page(result.scalars().all(), page)


async def find_tag_tenant(session: AsyncSession, tag_id: uuid.UUID) -> uuid.UUID | None:
    """Resolve the owning tenant of a tag for scans that carry no tenant.

    This is the only lookup without a tenant predicate; it returns the
    tenant id alone and all later statements are scoped to it.
    """
    result = await session.execute(select(QrTag.tenant_id).where(QrTag.id == tag_id))
    return result.scalar_one_or_none()


class QrScanRepository(_TenantScoped):
    async def create(
        self,
        *,
        qr_tag_id: uuid.UUID,
        ts: datetime,
        ip: str | None = None,
        ua: str | None = None,
        geo_json: dict[str, Any] | None = None,
    ) -> QrScan:
        scan = QrScan(
            tenant_id=self._tenant_id,
            qr_tag_id=qr_tag_id,
            ts=ts,
            ip=ip,
            ua=ua,
            geo_json=geo_json,
        )
        self._session.add(scan)
        await self._session.flush()
        return scan


class ProspectRepository(_TenantScoped):
    async def create(
        self,
        *,
        qr_tag_id: uuid.UUID | None = None,
        campaign_id: uuid.UUID | None = None,
        assigned_agent_id: uuid.UUID | None = None,
        status: str = "new",
        payload_json: dict[str, Any] | None = None,
        verified_at: datetime | None = None,
    ) -> Prospect:
        prospect = Prospect(
            tenant_id=self._tenant_id,
            qr_tag_id=qr_tag_id,
            campaign_id=campaign_id,
            assigned_agent_id=assigned_agent_id,
            status=status,
            payload_json=payload_json or {},
            verified_at=verified_at,
        )
        self._session.add(prospect)
        await self._session.flush()
        return prospect

    async def get_by_id(self, prospect_id: uuid.UUID) -> Prospect | None:
        stmt = select(Prospect).where(
            Prospect.id == prospect_id,
            Prospect.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_page(
        self, page: PageRequest
    ) -> tuple[list[Prospect], str | None]:
        stmt = select(Prospect).where(Prospect.tenant_id == self._tenant_id)
        result = await self._session.execute(apply_page(stmt, page, PROSPECT_SORT))
        return split_page(result.scalars().all(), page)


class CommissionRepository(_TenantScoped):
    async def create(
        self,
        *,
        prospect_id: uuid.UUID,
        agent_id: uuid.UUID,
        amount_cents: int,
        status: str,
    ) -> Commission:
        commission = Commission(
            tenant_id=self._tenant_id,
            prospect_id=prospect_id,
            agent_id=agent_id,
            amount_cents=amount_cents,
            status=status,
        )
        self._session.add(commission)
        await self._session.flush()
        return commission

    async def get_by_id(self, commission_id: uuid.UUID) -> Commission | None:
        stmt = select(Commission).where(
            Commission.id == commission_id,
            Commission.tenant_id == self._tenant_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_page(
        self, page: PageRequest
    ) -> tuple[list[Commission], str | None]:
        stmt = select(Commission).where(Commission.tenant_id == self._tenant_id)
        result = await self._session.execute(
            apply_page(stmt, page, COMMISSION_SORT)
        )
        return split_page(result.scalars().all(), page)


class AgentRepository(_TenantScoped):
    """Read-only view of the monolith's users holding the agent role."""

    async def list_all(self) -> list[dict[str, Any]]:
        stmt = (
            select(users.c.id, users.c.email, users.c.name)
            .where(
                users.c.tenant_id == self._tenant_id,
                users.c.roles.overlap([AGENT_ROLE]),
            )
            .order_by(users.c.name, users.c.id)
        )
        result = await self._session.execute(stmt)
        return [dict(row) for row in result.mappings().all()]
