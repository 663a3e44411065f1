"""Prospect intake and read endpoints."""

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
from leadgen_service.api.schemas import ProspectCreateRequest, ProspectResponse
from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.rate_limiter import OperationClass
from leadgen_service.errors import NotFound
from leadgen_service.storage.pagination import build_page_request
from leadgen_service.storage.repositories import PROSPECT_SORT, ProspectRepository

router = APIRouter(tags=["prospects"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
CreateDep = Annotated[
    TenantContext, Depends(require_rate_limit(OperationClass.CREATE))
]
ListDep = Annotated[TenantContext, Depends(require_rate_limit(OperationClass.LIST))]
LimitDep = Annotated[int, Depends(get_page_limit)]


@router.post(
    "/prospects",
    status_code=201,
    response_model=SuccessEnvelope[ProspectResponse],
)
async def create_prospect(
    body: ProspectCreateRequest,
    tenant: CreateDep,
    session: SessionDep,
    idempotency_key: Annotated[str | None, Depends(get_idempotency_key)],
    window: Annotated[timedelta, Depends(get_idempotency_window)],
    response: Response,
) -> Response:
    async def _create() -> SuccessEnvelope[ProspectResponse]:
        prospect = await ProspectRepository(session, tenant.tenant_id).create(
            **body.model_dump()
        )
        return SuccessEnvelope(
            code=201, data=ProspectResponse.model_validate(prospect)
        )

    return await idempotent_create(
        session=session,
        tenant_id=tenant.tenant_id,
        key=idempotency_key,
        payload=body.model_dump(mode="json"),
        window=window,
        create=_create,
        response=response,
    )


@router.get("/prospects")
async def list_prospects(
    tenant: ListDep,
    session: SessionDep,
    limit: LimitDep,
    cursor: str | None = Query(default=None, max_length=512),
    sort: str | None = Query(default=None, max_length=64),
) -> ListEnvelope[ProspectResponse]:
    page = build_page_request(
        limit=limit, cursor=cursor, sort=sort, fields=PROSPECT_SORT
    )
    repo = ProspectRepository(session, tenant.tenant_id)
    prospects, next_cursor = await repo.list_page(page)
    return ListEnvelope(
        data=[ProspectResponse.model_validate(p) for p in prospects],
        next_cursor=next_cursor,
    )


@router.get("/prospects/{prospect_id}")
async def get_prospect(
    prospect_id: uuid.UUID,
    tenant: ListDep,
    session: SessionDep,
) -> SuccessEnvelope[ProspectResponse]:
    repo = ProspectRepository(session, tenant.tenant_id)
    prospect = await repo.get_by_id(prospect_id)
    if prospect is None:
        raise NotFound("Prospect not found")
    return SuccessEnvelope(data=ProspectResponse.model_validate(prospect))
