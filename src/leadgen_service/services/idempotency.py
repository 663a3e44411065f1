"""Idempotency keys for create endpoints.

A client may send ``Idempotency-Key`` with a write. The first successful
write stores a hash of the request payload and the response body. Within
the retention window a retry with the same payload replays that body;
a retry with a different payload is a conflict.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.storage.orm import IdempotencyKey

logger = structlog.get_logger()

DEFAULT_WINDOW = timedelta(hours=24)


class IdempotencyAction(StrEnum):
    PROCEED = "proceed"
    REPLAY = "replay"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class IdempotencyDecision:
    action: IdempotencyAction
    response: str | None = None


PROCEED = IdempotencyDecision(IdempotencyAction.PROCEED)


def hash_payload(payload: Any) -> str:
    """SHA-256 over canonical JSON, so key order does not matter."""
    canonical = json.dumps(
        payload if payload is not None else {},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()


class IdempotencyStore:
    """Tenant-scoped access to stored idempotency records."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: uuid.UUID,
        *,
        window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._window = window

    def _cutoff(self) -> datetime:
        return datetime.now(UTC) - self._window

    async def check(self, key: str | None, payload: Any) -> IdempotencyDecision:
        """Decide whether a request proceeds, replays or conflicts."""
        if not key:
            return PROCEED

        stmt = (
            select(IdempotencyKey)
            .where(
                IdempotencyKey.tenant_id == self._tenant_id,
                IdempotencyKey.idempotency_key == key,
                IdempotencyKey.created_at >= self._cutoff(),
            )
            .order_by(IdempotencyKey.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            return PROCEED

        if record.request_hash == hash_payload(payload):
            return IdempotencyDecision(IdempotencyAction.REPLAY, record.response_body)

        logger.info("idempotency_conflict", tenant_id=str(self._tenant_id))
        return IdempotencyDecision(IdempotencyAction.CONFLICT)

    async def persist(self, key: str | None, payload: Any, response: str) -> None:
        """Store the response for ``key``.

        A concurrent insert for the same (tenant, key) is ignored. A record
        that has fallen out of the window is overwritten, so an expired key
        can be reused.
        """
        if not key:
            return

        stmt = insert(IdempotencyKey).values(
            tenant_id=self._tenant_id,
            idempotency_key=key,
            request_hash=hash_payload(payload),
            response_body=response,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_idempotency_tenant_key",
            set_={
                "request_hash": stmt.excluded.request_hash,
                "response_body": stmt.excluded.response_body,
                "created_at": datetime.now(UTC),
            },
            where=IdempotencyKey.created_at < self._cutoff(),
        )
        await self._session.execute(stmt)


async def purge_expired(session: AsyncSession, window: timedelta) -> int:
    """Delete records older than the retention window, across all tenants.

    Returns:
        Number of rows removed.
    """
    cutoff = datetime.now(UTC) - window
    result = await session.execute(
        delete(IdempotencyKey).where(IdempotencyKey.created_at < cutoff)
    )
    await session.commit()
    return result.rowcount or 0
