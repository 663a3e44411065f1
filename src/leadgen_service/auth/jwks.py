"""Remote JSON Web Key Set fetching with a per-URL TTL cache."""

from __future__ import annotations

import asyncio
import time

import httpx
import jwt
import structlog

from leadgen_service.auth.rate_limiter import Clock

logger = structlog.get_logger()

# Unknown ``kid`` triggers at most one early refresh per this interval.
MIN_REFRESH_INTERVAL_SECONDS = 30.0


class JWKSFetchError(Exception):
    """The key set endpoint was unreachable or returned no usable keys."""


class JWKSClient:
    """Fetch and cache the signing keys published at ``url``.

    The key set is refetched once the TTL expires, or early when a token
    names a key id the cached set does not contain (key rotation).
    """

    def __init__(
        self,
        url: str,
        *,
        ttl_seconds: float = 300.0,
        timeout_seconds: float = 3.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._url = url
        self._ttl = ttl_seconds
        self._timeout = timeout_seconds
        self._http = http_client
        self._clock = clock
        self._keyset: jwt.PyJWKSet | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._keyset is not None
            and self._clock() - self._fetched_at < self._ttl
        )

    async def _fetch(self) -> jwt.PyJWKSet:
        try:
            if self._http is not None:
                response = await self._http.get(self._url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._url)
            response.raise_for_status()
            keyset = jwt.PyJWKSet.from_dict(response.json())
        except (httpx.HTTPError, ValueError, jwt.PyJWKSetError) as exc:
            logger.warning("jwks_fetch_failed", url=self._url, error=str(exc))
            raise JWKSFetchError(str(exc)) from exc

        logger.debug("jwks_fetched", url=self._url, keys=len(keyset.keys))
        return keyset

    async def _refresh(self, *, force: bool = False) -> jwt.PyJWKSet:
        async with self._lock:
            if self._keyset is not None and not force and self._is_fresh():
                return self._keyset
            self._keyset = await self._fetch()
            self._fetched_at = self._clock()
            return self._keyset

    async def get_keyset(self) -> jwt.PyJWKSet:
        keyset = self._keyset
        if keyset is not None and self._is_fresh():
            return keyset
        return await self._refresh()

    async def get_signing_key(self, kid: str | None) -> jwt.PyJWK | None:
        """Return the key matching ``kid``.

        Without a ``kid`` the set must hold exactly one key.
        """
        keyset = await self.get_keyset()
        key = _select_key(keyset, kid)
        if key is None and kid is not None:
            since_fetch = self._clock() - self._fetched_at
            if since_fetch >= MIN_REFRESH_INTERVAL_SECONDS:
                keyset = await self._refresh(force=True)
                key = _select_key(keyset, kid)
        return key


def _select_key(keyset: jwt.PyJWKSet, kid: str | None) -> jwt.PyJWK | None:
    if kid is None:
        return keyset.keys[0] if len(keyset.keys) == 1 else None
    for key in keyset.keys:
        if key.key_id == kid:
            return key
    return None
