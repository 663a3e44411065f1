"""Scan ingestion endpoint.

Scans come from public landing pages, so only a verified token is
required. When the token carries no tenant and no ``x-tenant-id`` is
sent, the tenant is taken from the scanned tag itself.
"""

from __future__ import annotations

import ipaddress
import uuid
from datetime import UTC, datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leadgen_service.api.deps import (
    get_attribution_engine,
    get_optional_tenant_id,
    get_scan_limiter,
    get_session,
)
from leadgen_service.api.schemas import (
    AttributionResponse,
    ScanCreateRequest,
    ScanEnvelope,
    ScanResponse,
)
from leadgen_service.auth.rate_limiter import ScanRateLimiter
from leadgen_service.errors import NotFound, RateLimited
from leadgen_service.services.attribution import AttributionEngine
from leadgen_service.storage.repositories import (
    QrScanRepository,
    QrTagRepository,
    find_tag_tenant,
)

logger = structlog.get_logger()

router = APIRouter(tags=["scans"])

SessionDep = Annotated[AsyncSession, Depends(get_session)]
TenantIdDep = Annotated[uuid.UUID | None, Depends(get_optional_tenant_id)]
ScanLimiterDep = Annotated[ScanRateLimiter, Depends(get_scan_limiter)]
AttributionDep = Annotated[AttributionEngine, Depends(get_attribution_engine)]


def _caller_address(request: Request) -> str | None:
    """Peer address of the connection, if it parses as an IP."""
    if request.client is None:
        return None
    try:
        return str(ipaddress.ip_address(request.client.host))
    except ValueError:
        return None


@router.post("/scans", status_code=201, response_model=ScanEnvelope)
async def create_scan(
    body: ScanCreateRequest,
    request: Request,
    tenant_id: TenantIdDep,
    session: SessionDep,
    scan_limiter: ScanLimiterDep,
    attribution_engine: AttributionDep,
    user_agent: str | None = Header(default=None),
) -> ScanEnvelope:
    """Record a scan and attach best-effort vehicle/driver attribution.

    Raises:
        NotFound: tag absent, or owned by another tenant than the caller's.
        RateLimited: too many scans from this address for the tenant.
    """
    if tenant_id is None:
        tenant_id = await find_tag_tenant(session, body.qr_tag_id)
        if tenant_id is None:
            raise NotFound("QR tag not found")
        request.state.tenant_id = tenant_id

    tag = await QrTagRepository(session, tenant_id).get_by_id(body.qr_tag_id)
    if tag is None:
        raise NotFound("QR tag not found")
    car_id = tag.car_id

    caller = _caller_address(request)
    verdict = scan_limiter.check(str(tenant_id), caller or "unknown")
    if not verdict.allowed:
        logger.warning("scan_rate_limited", tenant_id=str(tenant_id), ip=caller)
        raise RateLimited(retry_after=verdict.reset, limit=verdict.limit)

    scanned_at = datetime.now(UTC)
    ip = str(body.ip) if body.ip is not None else caller
    scan = await QrScanRepository(session, tenant_id).create(
        qr_tag_id=tag.id,
        ts=scanned_at,
        ip=ip,
        ua=body.ua if body.ua is not None else user_agent,
        geo_json=body.geo,
    )
    await session.commit()
    data = ScanResponse.model_validate(scan)
    logger.info(
        "scan_recorded",
        tenant_id=str(tenant_id),
        scan_id=str(scan.id),
        qr_tag_id=str(tag.id),
    )

    attribution = await attribution_engine.resolve(session, car_id, scanned_at)
    if attribution.car_id is not None:
        request.state.car_id = attribution.car_id
    if attribution.driver_id is not None:
        request.state.driver_id = attribution.driver_id

    return ScanEnvelope(
        code=201,
        data=data,
        attribution=AttributionResponse(
            car_id=attribution.car_id,
            driver_id=attribution.driver_id,
        ),
    )
