"""Agent directory endpoint (read-only view of monolith users)."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.api.deps import get_session, require_rate_limit
from leadgen_service.api.envelope import SuccessEnvelope
from leadgen_service.api.schemas import AgentResponse
from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.rate_limiter import OperationClass
from leadgen_service.storage.repositories import AgentRepository

router = APIRouter(tags=["agents"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
ListDep = Annotated[TenantContext, Depends(require_rate_limit(OperationClass.LIST))]


@router.get("/agents")
async def list_agents(
    tenant: ListDep,
    session: SessionDep,
) -> SuccessEnvelope[list[AgentResponse]]:
    """Users of the tenant holding the agent role, ordered by name."""
    rows = await AgentRepository(session, tenant.tenant_id).list_all()
    return SuccessEnvelope(data=[AgentResponse.model_validate(r) for r in rows])
