"""Commission bookkeeping endpoints."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Annotated

import structlog
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
from leadgen_service.api.schemas import CommissionCreateRequest, CommissionResponse
from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.rate_limiter import OperationClass
from leadgen_service.errors import NotFound, ValidationFailure
from leadgen_service.storage.pagination import build_page_request
from leadgen_service.storage.repositories import (
    COMMISSION_SORT,
    CommissionRepository,
    ProspectRepository,
)

logger = structlog.get_logger()

router = APIRouter(tags=["commissions"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
CreateDep = Annotated[
    TenantContext, Depends(require_rate_limit(OperationClass.CREATE))
]
ListDep = Annotated[TenantContext, Depends(require_rate_limit(OperationClass.LIST))]
LimitDep = Annotated[int, Depends(get_page_limit)]


@router.post(
    "/commissions",
    status_code=201,
    response_model=SuccessEnvelope[CommissionResponse],
)
async def create_commission(
    body: CommissionCreateRequest,
    tenant: CreateDep,
    session: SessionDep,
    idempotency_key: Annotated[str | None, Depends(get_idempotency_key)],
    window: Annotated[timedelta, Depends(get_idempotency_window)],
    response: Response,
) -> Response:
    """Book a commission against one of the tenant's prospects.

    Raises:
        ValidationFailure: ``prospect_id`` does not name a prospect of
            this tenant.
    """

    async def _create() -> SuccessEnvelope[CommissionResponse]:
        prospect = await ProspectRepository(session, tenant.tenant_id).get_by_id(
            body.prospect_id
        )
        if prospect is None:
            raise ValidationFailure("prospect_id: unknown prospect")
        commission = await CommissionRepository(session, tenant.tenant_id).create(
            prospect_id=body.prospect_id,
            agent_id=body.agent_id,
            amount_cents=body.amount_cents,
            status=body.status,
        )
        logger.info(
            "commission_created",
            commission_id=str(commission.id),
            amount_cents=commission.amount_cents,
        )
        return SuccessEnvelope(
            code=201, data=CommissionResponse.model_validate(commission)
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


@router.get("/commissions")
async def list_commissions(
    tenant: ListDep,
    session: SessionDep,
    limit: LimitDep,
    cursor: str | None = Query(default=None, max_length=512),
    sort: str | None = Query(default=None, max_length=64),
) -> ListEnvelope[CommissionResponse]:
    page = build_page_request(
        limit=limit, cursor=cursor, sort=sort, fields=COMMISSION_SORT
    )
    repo = CommissionRepository(session, tenant.tenant_id)
    commissions, next_cursor = await repo.list_page(page)
    return ListEnvelope(
        data=[CommissionResponse.model_validate(c) for c in commissions],
        next_cursor=next_cursor,
    )


@router.get("/commissions/{commission_id}")
async def get_commission(
    commission_id: uuid.UUID,
    tenant: ListDep,
    session: SessionDep,
) -> SuccessEnvelope[CommissionResponse]:
    repo = CommissionRepository(session, tenant.tenant_id)
    commission = await repo.get_by_id(commission_id)
    if commission is None:
        raise NotFound("Commission not found")
    return SuccessEnvelope(data=CommissionResponse.model_validate(commission))
