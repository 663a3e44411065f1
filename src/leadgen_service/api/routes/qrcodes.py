"""QR tag API endpoints."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.api.deps import (
    get_idempotency_key,
    get_idempotency_window,
    get_page_limit,
    get_session,
    require_rate_limit,
)
from leadgen_service.api.envelope import ListEnvelope, SuccessEnvelope
from leadgen_service.api.idempotent import idempotent_create
from leadgen_service.api.schemas import (
    QrTagCreateRequest,
    QrTagResponse,
    QrTagUpdateRequest,
)
from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.rate_limiter import OperationClass
from leadgen_service.errors import NotFound
from leadgen_service.storage.pagination import build_page_request
from leadgen_service.storage.repositories import QR_TAG_SORT, QrTagRepository

router = APIRouter(tags=["qrcodes"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
CreateDep = Annotated[
    TenantContext, Depends(require_rate_limit(OperationClass.CREATE))
]
ListDep = Annotated[TenantContext, Depends(require_rate_limit(OperationClass.LIST))]
IdempotencyKeyDep = Annotated[str | None, Depends(get_idempotency_key)]
WindowDep = Annotated[timedelta, Depends(get_idempotency_window)]
LimitDep = Annotated[int, Depends(get_page_limit)]


@router.post(
    "/qrcodes",
    status_code=201,
    response_model=SuccessEnvelope[QrTagResponse],
)
async def create_qrcode(
    body: QrTagCreateRequest,
    tenant: CreateDep,
    session: SessionDep,
    idempotency_key: IdempotencyKeyDep,
    window: WindowDep,
    response: Response,
) -> Response:
    """Create a QR tag.

    Honors ``Idempotency-Key``: a retry with the same body returns the
    original response (200); a different body under the same key is 409.
    """

    async def _create() -> SuccessEnvelope[QrTagResponse]:
        repo = QrTagRepository(session, tenant.tenant_id)
        tag = await repo.create(**body.model_dump())
        return SuccessEnvelope(code=201, data=QrTagResponse.model_validate(tag))

    return await idempotent_create(
        session=session,
        tenant_id=tenant.tenant_id,
        key=idempotency_key,
        payload=body.model_dump(mode="json"),
        window=window,
        create=_create,
        response=response,
    )


@router.get("/qrcodes")
async def list_qrcodes(
    tenant: ListDep,
    session: SessionDep,
    limit: LimitDep,
    cursor: str | None = Query(default=None, max_length=512),
    sort: str | None = Query(
        default=None,
        max_length=64,
        description="``field:dir``; fields: created_at, updated_at, code, status.",
    ),
) -> ListEnvelope[QrTagResponse]:
    """List the tenant's QR tags, newest first by default."""
    page = build_page_request(
        limit=limit, cursor=cursor, sort=sort, fields=QR_TAG_SORT
    )
    tags, next_cursor = await QrTagRepository(session, tenant.tenant_id).list_page(
        page
    )
    return ListEnvelope(
        data=[QrTagResponse.model_validate(t) for t in tags],
        next_cursor=next_cursor,
    )


@router.get("/qrcodes/{qr_id}")
async def get_qrcode(
    qr_id: uuid.UUID,
    tenant: ListDep,
    session: SessionDep,
) -> SuccessEnvelope[QrTagResponse]:
    tag = await QrTagRepository(session, tenant.tenant_id).get_by_id(qr_id)
    if tag is None:
        raise NotFound("QR tag not found")
    return SuccessEnvelope(data=QrTagResponse.model_validate(tag))


@router.patch("/qrcodes/{qr_id}")
async def update_qrcode(
    qr_id: uuid.UUID,
    body: QrTagUpdateRequest,
    tenant: CreateDep,
    session: SessionDep,
) -> SuccessEnvelope[QrTagResponse]:
    """Change status or links of a tag. Only fields present in the body change."""
    repo = QrTagRepository(session, tenant.tenant_id)
    tag = await repo.update(qr_id, **body.model_dump(exclude_unset=True))
    if tag is None:
        raise NotFound("QR tag not found")
    response = QrTagResponse.model_validate(tag)
    await session.commit()
    return SuccessEnvelope(data=response)
