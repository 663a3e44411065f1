"""Tests for JWKS caching, token verification and tenant resolution."""

import json
import time
import uuid

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from leadgen_service.auth.jwks import JWKSClient, JWKSFetchError
from leadgen_service.auth.tokens import (
    TokenVerifier,
    extract_bearer_token,
    resolve_tenant_id,
)
from leadgen_service.errors import AuthenticationFailure, AuthorizationFailure

JWKS_URL = "https://auth.test/.well-known/jwks.json"
ISSUER = "https://auth.test"
AUDIENCE = "mktr-api"


def _keypair(kid: str) -> tuple[rsa.RSAPrivateKey, dict]:
    private = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    jwk = json.loads(RSAAlgorithm.to_jwk(private.public_key()))
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return private, jwk


KEY_1, JWK_1 = _keypair("k1")
KEY_2, JWK_2 = _keypair("k2")


def _token(private=KEY_1, kid: str = "k1", **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": "user-1",
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + 300,
        "tid": str(uuid.uuid4()),
    }
    claims.update(overrides)
    return jwt.encode(claims, private, algorithm="RS256", headers={"kid": kid})


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class JWKSServer:
    """httpx MockTransport handler serving a mutable key set."""

    def __init__(self, *keys: dict) -> None:
        self.keys = list(keys)
        self.calls = 0
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.fail:
            return httpx.Response(503)
        return httpx.Response(200, json={"keys": self.keys})


def _client(server: JWKSServer, clock: FakeClock, ttl: float = 300) -> JWKSClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return JWKSClient(JWKS_URL, ttl_seconds=ttl, http_client=http, clock=clock)


def _verifier(jwks: JWKSClient) -> TokenVerifier:
    return TokenVerifier(jwks, issuer=ISSUER, audience=AUDIENCE, algorithms=["RS256"])


class TestJWKSClient:
    async def test_keyset_cached_within_ttl(self) -> None:
        server = JWKSServer(JWK_1)
        clock = FakeClock()
        jwks = _client(server, clock)

        await jwks.get_keyset()
        clock.now += 100
        await jwks.get_keyset()
        assert server.calls == 1

    async def test_refetch_after_ttl(self) -> None:
        server = JWKSServer(JWK_1)
        clock = FakeClock()
        jwks = _client(server, clock, ttl=60)

        await jwks.get_keyset()
        clock.now += 61
        await jwks.get_keyset()
        assert server.calls == 2

    async def test_fetch_failure_raises(self) -> None:
        server = JWKSServer(JWK_1)
        server.fail = True
        with pytest.raises(JWKSFetchError):
            await _client(server, FakeClock()).get_keyset()

    async def test_unknown_kid_refreshes_once_keys_rotate(self) -> None:
        server = JWKSServer(JWK_1)
        clock = FakeClock()
        jwks = _client(server, clock)
        assert await jwks.get_signing_key("k1") is not None

        server.keys = [JWK_1, JWK_2]
        # Too soon after the last fetch: no extra round trip.
        assert await jwks.get_signing_key("k2") is None
        assert server.calls == 1

        clock.now += 31
        key = await jwks.get_signing_key("k2")
        assert key is not None
        assert key.key_id == "k2"
        assert server.calls == 2

    async def test_without_kid_single_key_is_used(self) -> None:
        jwks = _client(JWKSServer(JWK_1), FakeClock())
        key = await jwks.get_signing_key(None)
        assert key is not None
        assert key.key_id == "k1"


class TestTokenVerifier:
    async def test_valid_token_returns_claims(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        claims = await verifier.verify(_token(sub="agent-7"))
        assert claims["sub"] == "agent-7"

    async def test_expired_token(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        expired = _token(exp=int(time.time()) - 10)
        with pytest.raises(AuthenticationFailure, match="expired"):
            await verifier.verify(expired)

    async def test_wrong_audience(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        with pytest.raises(AuthenticationFailure, match="Invalid token"):
            await verifier.verify(_token(aud="someone-else"))

    async def test_wrong_issuer(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        with pytest.raises(AuthenticationFailure):
            await verifier.verify(_token(iss="https://evil.test"))

    async def test_signature_from_unpublished_key(self) -> None:
        """A token signed by another key under a published kid fails."""
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        with pytest.raises(AuthenticationFailure, match="Invalid token"):
            await verifier.verify(_token(private=KEY_2, kid="k1"))

    async def test_unknown_kid(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        with pytest.raises(AuthenticationFailure, match="Unknown signing key"):
            await verifier.verify(_token(private=KEY_2, kid="k2"))

    async def test_malformed_token(self) -> None:
        verifier = _verifier(_client(JWKSServer(JWK_1), FakeClock()))
        with pytest.raises(AuthenticationFailure, match="Malformed"):
            await verifier.verify("not.a.jwt")

    async def test_key_endpoint_down(self) -> None:
        server = JWKSServer(JWK_1)
        server.fail = True
        verifier = _verifier(_client(server, FakeClock()))
        with pytest.raises(AuthenticationFailure, match="unavailable"):
            await verifier.verify(_token())


class TestExtractBearerToken:
    def test_valid(self) -> None:
        assert extract_bearer_token("Bearer abc.def") == "abc.def"

    def test_scheme_case_insensitive(self) -> None:
        assert extract_bearer_token("bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Basic abc"])
    def test_rejected(self, header: str | None) -> None:
        with pytest.raises(AuthenticationFailure):
            extract_bearer_token(header)


class TestResolveTenantId:
    def test_claim_wins(self) -> None:
        claim, header = uuid.uuid4(), uuid.uuid4()
        assert resolve_tenant_id({"tid": str(claim)}, str(header)) == claim

    def test_header_fallback(self) -> None:
        header = uuid.uuid4()
        assert resolve_tenant_id({}, str(header)) == header

    def test_custom_claim_name(self) -> None:
        tenant = uuid.uuid4()
        claims = {"tenant": str(tenant)}
        assert resolve_tenant_id(claims, None, claim_name="tenant") == tenant

    def test_none_when_absent(self) -> None:
        assert resolve_tenant_id({"sub": "x"}, None) is None

    def test_invalid_uuid(self) -> None:
        with pytest.raises(AuthorizationFailure):
            resolve_tenant_id({"tid": "tenant-1"}, None)
