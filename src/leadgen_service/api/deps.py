"""FastAPI dependency injection.

Protected routes pass two gates in order: token verification
(``get_token_claims``) and tenant resolution (``get_current_tenant``).
Rate limiting runs after both, before request handling.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable, Coroutine
from datetime import timedelta
from typing import Any, cast

from fastapi import Depends, Header, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.rate_limiter import (
    FixedWindowRateLimiter,
    OperationClass,
    ScanRateLimiter,
)
from leadgen_service.auth.tokens import (
    TokenVerifier,
    extract_bearer_token,
    resolve_tenant_id,
)
from leadgen_service.config import Settings
from leadgen_service.errors import (
    AuthorizationFailure,
    RateLimited,
    ValidationFailure,
)
from leadgen_service.services.attribution import AttributionEngine
from leadgen_service.storage.database import unit_of_work

__all__ = [
    "get_attribution_engine",
    "get_current_tenant",
    "get_idempotency_key",
    "get_idempotency_window",
    "get_optional_tenant_id",
    "get_page_limit",
    "get_scan_limiter",
    "get_session",
    "get_token_claims",
    "require_rate_limit",
]


def _settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """One session per request, from the app's pooled session factory."""
    factory = cast(
        async_sessionmaker[AsyncSession], request.app.state.session_factory
    )
    async with unit_of_work(factory) as session:
        yield session


async def get_page_limit(
    request: Request,
    limit: int | None = Query(default=None, ge=1, description="Page size."),
) -> int:
    """Page size for list endpoints, bounded by the configured maximum.

    Raises:
        ValidationFailure (400): ``limit`` above ``list_max_limit``.
    """
    cfg = _settings(request)
    if limit is None:
        return cfg.list_default_limit
    if limit > cfg.list_max_limit:
        raise ValidationFailure(f"limit: must be at most {cfg.list_max_limit}")
    return limit


async def get_token_claims(
    request: Request,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    """Gate 1: verify the bearer token and return its claims.

    Raises:
        AuthenticationFailure (401): missing token, bad signature,
            wrong issuer/audience, or expired.
    """
    token = extract_bearer_token(authorization)
    verifier = cast(TokenVerifier, request.app.state.token_verifier)
    claims = await verifier.verify(token)
    request.state.claims = claims
    return claims


_claims_dep = Depends(get_token_claims)


async def get_optional_tenant_id(
    request: Request,
    claims: dict[str, Any] = _claims_dep,
    x_tenant_id: str | None = Header(default=None),
) -> uuid.UUID | None:
    """Tenant from the token claim or ``x-tenant-id``; None if neither is set."""
    tenant_id = resolve_tenant_id(
        claims, x_tenant_id, claim_name=_settings(request).auth_tenant_claim
    )
    if tenant_id is not None:
        request.state.tenant_id = tenant_id
    return tenant_id


_optional_tenant_dep = Depends(get_optional_tenant_id)


async def get_current_tenant(
    claims: dict[str, Any] = _claims_dep,
    tenant_id: uuid.UUID | None = _optional_tenant_dep,
) -> TenantContext:
    """Gate 2: a resolved tenant is mandatory.

    Raises:
        AuthorizationFailure (403): no tenant claim and no tenant header.
    """
    if tenant_id is None:
        raise AuthorizationFailure()
    sub = claims.get("sub")
    return TenantContext(
        tenant_id=tenant_id,
        subject=str(sub) if sub is not None else None,
        claims=claims,
    )


_tenant_dep = Depends(get_current_tenant)


def require_rate_limit(
    op: OperationClass,
) -> Callable[..., Coroutine[Any, Any, TenantContext]]:
    """Dependency factory: authenticated tenant, then per-class rate limit.

    Usage as parameter dependency (returns TenantContext)::

        async def endpoint(
            tenant: TenantContext = Depends(require_rate_limit(OperationClass.CREATE)),
        ): ...

    Raises:
        RateLimited (429): ceiling for this second exceeded
            (includes ``Retry-After: 1``).
    """

    async def _check_rate(
        request: Request,
        response: Response,
        tenant: TenantContext = _tenant_dep,
    ) -> TenantContext:
        limiter = cast(FixedWindowRateLimiter, request.app.state.rate_limiter)
        verdict = limiter.check(str(tenant.tenant_id), op)
        if not verdict.allowed:
            raise RateLimited(retry_after=verdict.reset, limit=verdict.limit)

        response.headers["RateLimit-Limit"] = str(verdict.limit)
        response.headers["RateLimit-Remaining"] = str(verdict.remaining)
        response.headers["RateLimit-Reset"] = str(verdict.reset)
        return tenant

    return _check_rate


async def get_idempotency_key(
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    x_idempotency_key: str | None = Header(default=None, alias="X-Idempotency-Key"),
) -> str | None:
    """Either header is accepted; ``Idempotency-Key`` wins if both are sent."""
    key = (idempotency_key or x_idempotency_key or "").strip()
    return key or None


async def get_idempotency_window(request: Request) -> timedelta:
    return _settings(request).idempotency_window


async def get_scan_limiter(request: Request) -> ScanRateLimiter:
    return cast(ScanRateLimiter, request.app.state.scan_limiter)


async def get_attribution_engine(request: Request) -> AttributionEngine:
    return cast(AttributionEngine, request.app.state.attribution_engine)
