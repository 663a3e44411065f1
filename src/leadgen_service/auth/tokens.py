"""Bearer token verification and tenant resolution."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

import jwt
import structlog

from leadgen_service.auth.jwks import JWKSClient, JWKSFetchError
from leadgen_service.errors import AuthenticationFailure, AuthorizationFailure

logger = structlog.get_logger()


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationFailure: header missing or not a bearer credential.
    """
    raw = (authorization or "").strip()
    if not raw:
        raise AuthenticationFailure("Missing Authorization header")

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise AuthenticationFailure("Invalid Authorization header format")

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise AuthenticationFailure("Authorization must be: Bearer <token>")
    return token


class TokenVerifier:
    """Verify signature, issuer and audience of access tokens."""

    def __init__(
        self,
        jwks: JWKSClient,
        *,
        issuer: str,
        audience: str,
        algorithms: list[str],
    ) -> None:
        self._jwks = jwks
        self._issuer = issuer
        self._audience = audience
        self._algorithms = algorithms

    async def verify(self, token: str) -> dict[str, Any]:
        """Return the verified claims.

        Raises:
            AuthenticationFailure: on any verification problem, including
                an unreachable key set endpoint.
        """
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            raise AuthenticationFailure("Malformed token") from None

        try:
            key = await self._jwks.get_signing_key(header.get("kid"))
        except JWKSFetchError:
            raise AuthenticationFailure("Signing keys unavailable") from None
        if key is None:
            raise AuthenticationFailure("Unknown signing key")

        try:
            return jwt.decode(
                token,
                key.key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailure("Token expired") from None
        except jwt.PyJWTError as exc:
            logger.info("token_rejected", reason=type(exc).__name__)
            raise AuthenticationFailure("Invalid token") from None


def resolve_tenant_id(
    claims: Mapping[str, Any],
    header_value: str | None,
    *,
    claim_name: str = "tid",
) -> uuid.UUID | None:
    """Tenant from the verified claim, falling back to the tenant header.

    Returns:
        The tenant id, or None when neither source provides one.

    Raises:
        AuthorizationFailure: the provided value is not a UUID.
    """
    raw = claims.get(claim_name) or header_value
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw).strip())
    except ValueError:
        raise AuthorizationFailure("Tenant id is not a valid UUID") from None
