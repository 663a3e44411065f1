"""Token verification, tenant resolution and rate limiting.

Note: the FastAPI dependencies built on these live in ``api.deps``.
"""

from leadgen_service.auth.context import TenantContext
from leadgen_service.auth.jwks import JWKSClient
from leadgen_service.auth.tokens import TokenVerifier, resolve_tenant_id

__all__ = ["JWKSClient", "TenantContext", "TokenVerifier", "resolve_tenant_id"]
