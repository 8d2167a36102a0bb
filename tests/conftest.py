"""Pytest configuration and fixtures."""
import json
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from tierstream.core.credentials import CredentialVerifier
from tierstream.core.errors import UpstreamError
from tierstream.core.events import StreamFragment
from tierstream.core.jwks import KeySetCache

JWKS_URL = "https://issuer.test/.well-known/jwks.json"


def _jwk(private_key, kid):
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return jwk


@pytest.fixture(scope="session")
def signing_key():
    """RSA key whose public half is published in the JWKS."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rogue_key():
    """RSA key that is not published anywhere."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks(signing_key):
    """JWKS document with one usable key."""
    return {"keys": [_jwk(signing_key, "key-1")]}


@pytest.fixture
def make_jwk():
    """Factory for JWK entries."""
    return _jwk


@pytest.fixture
def make_token(signing_key):
    """Factory for signed bearer tokens."""

    def _make(kid="key-1", key=None, expires_in=300, **claims):
        payload = {"sub": "user_123", "exp": int(time.time()) + expires_in}
        payload.update(claims)
        return jwt.encode(payload, key or signing_key, algorithm="RS256", headers={"kid": kid})

    return _make


class JWKSServer:
    """Mock key source counting fetches."""

    def __init__(self, document, status_code=200):
        self.document = document
        self.status_code = status_code
        self.calls = 0
        self.fail_with = None

    def handler(self, request):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        return httpx.Response(self.status_code, json=self.document)


@pytest.fixture
def jwks_server(jwks):
    return JWKSServer(jwks)


@pytest.fixture
def key_cache(jwks_server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(jwks_server.handler))
    return KeySetCache(JWKS_URL, fetch_timeout_s=1.0, min_refresh_interval_s=0, client=client)


@pytest.fixture
def verifier(key_cache):
    return CredentialVerifier(key_cache)


class FakeStreamAdapter:
    """Stand-in for ModelStreamAdapter yielding canned fragments."""

    provider = "fake"

    def __init__(self, fragments=(), error: UpstreamError = None):
        self.fragments = list(fragments)
        self.error = error
        self.calls = []
        self.closed = False

    async def stream(self, model, messages):
        self.calls.append({"model": model, "messages": messages})
        try:
            for text in self.fragments:
                yield StreamFragment(text=text)
            if self.error is not None:
                yield StreamFragment.failure(self.error)
        finally:
            self.closed = True


@pytest.fixture
def fake_stream_adapter():
    return FakeStreamAdapter(["Hello", " world"])


@pytest.fixture
def build_app(key_cache, fake_stream_adapter):
    """Build the application with the mock key source and a fake upstream."""
    from tierstream.app.dependencies import AppState, get_app_state, init_app_state
    from tierstream.app.main import create_app
    from tierstream.config.schema import AuthConfig, RelayConfig

    def _build(stream_adapter=None, **overrides):
        config = RelayConfig(auth=AuthConfig(jwks_url=JWKS_URL), **overrides)
        app = create_app(config)

        state = init_app_state(config, AppState())
        state.key_cache = key_cache
        state.verifier = CredentialVerifier(key_cache, plan_claim=config.tiers.plan_claim)
        state.stream_adapter = stream_adapter or fake_stream_adapter
        app.dependency_overrides[get_app_state] = lambda: state
        return app

    return _build
