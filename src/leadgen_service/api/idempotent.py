"""Shared flow for create endpoints that honor ``Idempotency-Key``."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

import structlog
from fastapi import Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.errors import IdempotencyConflict
from leadgen_service.services.idempotency import IdempotencyAction, IdempotencyStore

logger = structlog.get_logger()

REPLAY_HEADER = "Idempotent-Replayed"
JSON_MEDIA_TYPE = "application/json"


def _render(body: str, status_code: int, sub_response: Response) -> Response:
    """Send ``body`` as is, keeping headers that dependencies set."""
    response = Response(
        content=body, status_code=status_code, media_type=JSON_MEDIA_TYPE
    )
    for name, value in sub_response.headers.items():
        response.headers.setdefault(name, value)
    return response


async def idempotent_create(
    *,
    session: AsyncSession,
    tenant_id: uuid.UUID,
    key: str | None,
    payload: dict[str, Any],
    window: timedelta,
    create: Callable[[], Awaitable[BaseModel]],
    response: Response,
    status_code: int = 201,
) -> Response:
    """Check the key, run ``create``, store its rendered response, commit.

    The envelope is rendered to JSON once; the same text is sent to the
    client and stored, so a replay is byte-identical to the first answer
    (with HTTP 200 and ``Idempotent-Replayed``). The write and its
    idempotency record commit in the same transaction.

    Raises:
        IdempotencyConflict: key already used for a different payload.
    """
    store = IdempotencyStore(session, tenant_id, window=window)
    decision = await store.check(key, payload)

    if decision.action == IdempotencyAction.CONFLICT:
        raise IdempotencyConflict()
    if decision.action == IdempotencyAction.REPLAY:
        logger.info("idempotent_replay", tenant_id=str(tenant_id))
        replay = _render(decision.response or "", 200, response)
        replay.headers[REPLAY_HEADER] = "true"
        return replay

    envelope = await create()
    body = envelope.model_dump_json()
    await store.persist(key, payload, body)
    await session.commit()
    return _render(body, status_code, response)
