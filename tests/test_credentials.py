"""Tests for bearer credential verification."""
import base64
import json
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from tierstream.core.credentials import CredentialVerifier, extract_bearer
from tierstream.core.errors import AuthError, AuthFailureReason


async def _reason(verifier, token):
    with pytest.raises(AuthError) as exc_info:
        await verifier.verify(token)
    return exc_info.value.reason


class TestExtractBearer:
    """Test Authorization header parsing."""

    def test_bearer(self):
        assert extract_bearer("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_scheme_case_insensitive(self):
        assert extract_bearer("bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   "])
    def test_missing(self, header):
        assert extract_bearer(header) is None

    def test_other_scheme_is_malformed(self):
        with pytest.raises(AuthError) as exc_info:
            extract_bearer("Basic dXNlcjpwYXNz")
        assert exc_info.value.reason is AuthFailureReason.MALFORMED


class TestCredentialVerifier:
    """Test signature, expiry and claim checks."""

    @pytest.mark.asyncio
    async def test_valid_token(self, verifier, make_token):
        credential = await verifier.verify(make_token(pla="u:premium_subscription"))

        assert credential.subject == "user_123"
        assert credential.plan == "u:premium_subscription"
        assert credential.claims["pla"] == "u:premium_subscription"
        assert credential.expires_at > time.time()

    @pytest.mark.asyncio
    async def test_non_string_plan_not_exposed(self, verifier, make_token):
        credential = await verifier.verify(make_token(pla=["premium_subscription"]))
        assert credential.plan is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "  "])
    async def test_missing(self, verifier, token):
        assert await _reason(verifier, token) is AuthFailureReason.MISSING

    @pytest.mark.asyncio
    async def test_garbage_is_malformed(self, verifier):
        assert await _reason(verifier, "not-a-jwt") is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_expired(self, verifier, make_token):
        token = make_token(expires_in=-60)
        assert await _reason(verifier, token) is AuthFailureReason.EXPIRED

    @pytest.mark.asyncio
    async def test_leeway_accepts_slightly_expired(self, key_cache, make_token):
        verifier = CredentialVerifier(key_cache, leeway_s=120)
        credential = await verifier.verify(make_token(expires_in=-60))
        assert credential.subject == "user_123"

    @pytest.mark.asyncio
    async def test_signed_with_wrong_key(self, verifier, make_token, rogue_key):
        token = make_token(key=rogue_key)
        assert await _reason(verifier, token) is AuthFailureReason.SIGNATURE_INVALID

    @pytest.mark.asyncio
    async def test_tampered_payload(self, verifier, make_token):
        header, payload, signature = make_token().split(".")
        other = make_token(sub="someone_else").split(".")[1]
        token = ".".join([header, other, signature])
        assert await _reason(verifier, token) is AuthFailureReason.SIGNATURE_INVALID

    @pytest.mark.asyncio
    async def test_unknown_key_id(self, verifier, make_token, rogue_key):
        token = make_token(kid="rotated-away", key=rogue_key)
        assert await _reason(verifier, token) is AuthFailureReason.SIGNATURE_INVALID

    @pytest.mark.asyncio
    async def test_missing_kid_is_malformed(self, verifier, signing_key):
        token = jwt.encode({"sub": "u", "exp": int(time.time()) + 60}, signing_key, algorithm="RS256")
        assert await _reason(verifier, token) is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_disallowed_algorithm_is_malformed(self, verifier):
        token = jwt.encode(
            {"sub": "u", "exp": int(time.time()) + 60},
            "shared-secret-long-enough-for-hs256-keys",
            algorithm="HS256",
            headers={"kid": "key-1"},
        )
        assert await _reason(verifier, token) is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_missing_subject_is_malformed(self, verifier, signing_key):
        token = jwt.encode(
            {"exp": int(time.time()) + 60}, signing_key, algorithm="RS256", headers={"kid": "key-1"}
        )
        assert await _reason(verifier, token) is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_issuer_checked_when_configured(self, key_cache, make_token):
        verifier = CredentialVerifier(key_cache, issuer="https://issuer.test")

        assert (await verifier.verify(make_token(iss="https://issuer.test"))).subject == "user_123"
        assert await _reason(verifier, make_token(iss="https://evil.test")) is AuthFailureReason.CLAIMS_INVALID

    @pytest.mark.asyncio
    async def test_authorized_party_checked_when_configured(self, key_cache, make_token):
        verifier = CredentialVerifier(key_cache, authorized_parties=["https://app.example.com"])

        assert (await verifier.verify(make_token(azp="https://app.example.com"))).subject == "user_123"
        assert await _reason(verifier, make_token(azp="https://other.test")) is AuthFailureReason.CLAIMS_INVALID
        assert await _reason(verifier, make_token()) is AuthFailureReason.CLAIMS_INVALID

    @pytest.mark.asyncio
    async def test_not_yet_valid(self, verifier, make_token):
        token = make_token(nbf=int(time.time()) + 600)
        assert await _reason(verifier, token) is AuthFailureReason.CLAIMS_INVALID

    @pytest.mark.asyncio
    async def test_key_source_down(self, verifier, make_token, jwks_server):
        jwks_server.fail_with = httpx.ConnectError("down")
        assert await _reason(verifier, make_token()) is AuthFailureReason.KEY_UNAVAILABLE


def _with_header(token, header):
    """Swap the header segment of ``token`` for ``header``."""
    encoded = base64.urlsafe_b64encode(json.dumps(header).encode()).rstrip(b"=").decode()
    return ".".join([encoded] + token.split(".")[1:])


class TestHostileHeaders:
    """Test headers PyJWT rejects outside of DecodeError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kid", [123, ["key-1"], {"id": "key-1"}])
    async def test_non_string_kid_is_malformed(self, verifier, make_token, kid):
        token = _with_header(make_token(), {"alg": "RS256", "typ": "JWT", "kid": kid})
        assert await _reason(verifier, token) is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_header_not_an_object_is_malformed(self, verifier, make_token):
        token = _with_header(make_token(), ["RS256"])
        assert await _reason(verifier, token) is AuthFailureReason.MALFORMED

    @pytest.mark.asyncio
    async def test_key_type_mismatch_is_signature_invalid(self, key_cache):
        verifier = CredentialVerifier(key_cache, algorithms=("RS256", "ES256"))
        ec_key = ec.generate_private_key(ec.SECP256R1())
        token = jwt.encode(
            {"sub": "u", "exp": int(time.time()) + 60},
            ec_key,
            algorithm="ES256",
            headers={"kid": "key-1"},
        )

        assert await _reason(verifier, token) is AuthFailureReason.SIGNATURE_INVALID
