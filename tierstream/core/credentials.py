"""Bearer credential verification."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import jwt

from tierstream.core.errors import AuthError, AuthFailureReason
from tierstream.core.jwks import KeySetCache
from tierstream.metrics.prometheus import auth_failures_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedCredential:
    """Claims of a credential whose signature and expiry have been checked."""
    subject: str
    expires_at: int
    plan: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization`` header value.

    Returns None when the header is absent or blank.

    Raises:
        AuthError: If the header uses a scheme other than Bearer.
    """
    if not authorization or not authorization.strip():
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        raise AuthError(AuthFailureReason.MALFORMED, "Authorization scheme must be Bearer")
    return token.strip() or None


class CredentialVerifier:
    """Verify signed bearer tokens against a rotating public key set."""

    def __init__(
        self,
        key_cache: KeySetCache,
        algorithms: Sequence[str] = ("RS256",),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        authorized_parties: Sequence[str] = (),
        leeway_s: float = 0,
        plan_claim: str = "pla",
    ):
        self.key_cache = key_cache
        self.algorithms = list(algorithms)
        self.issuer = issuer
        self.audience = audience
        self.authorized_parties = set(authorized_parties)
        self.leeway_s = leeway_s
        self.plan_claim = plan_claim

    async def verify(self, token: Optional[str]) -> VerifiedCredential:
        """Verify ``token`` and return its claims.

        Raises:
            AuthError: On any verification failure. Nothing about an
                unverified token is ever returned.
        """
        try:
            return await self._verify(token)
        except AuthError as e:
            auth_failures_total.labels(reason=e.reason.value).inc()
            logger.info(f"Credential rejected: reason={e.reason.value}")
            raise

    async def _verify(self, token: Optional[str]) -> VerifiedCredential:
        if not token or not token.strip():
            raise AuthError(AuthFailureReason.MISSING, "Missing bearer credential")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            # DecodeError, or a header with a non-string kid
            raise AuthError(AuthFailureReason.MALFORMED, "Credential is not a valid token") from e

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid.strip():
            raise AuthError(AuthFailureReason.MALFORMED, "Credential header has no key id")
        if header.get("alg") not in self.algorithms:
            raise AuthError(AuthFailureReason.MALFORMED, "Credential uses an unsupported algorithm")

        key = await self.key_cache.get_key(kid)
        if key is None:
            raise AuthError(AuthFailureReason.SIGNATURE_INVALID, "Credential signed by an unknown key")

        try:
            claims = jwt.decode(
                token,
                key=key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_s,
                options={
                    "verify_aud": self.audience is not None,
                    "require": ["exp", "sub"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            raise AuthError(AuthFailureReason.EXPIRED, "Credential has expired") from e
        except jwt.InvalidSignatureError as e:
            raise AuthError(AuthFailureReason.SIGNATURE_INVALID, "Credential signature is invalid") from e
        except (
            jwt.InvalidIssuerError,
            jwt.InvalidAudienceError,
            jwt.ImmatureSignatureError,
        ) as e:
            raise AuthError(AuthFailureReason.CLAIMS_INVALID, f"Credential claims rejected: {e}") from e
        except jwt.InvalidTokenError as e:
            # DecodeError, MissingRequiredClaimError and friends
            raise AuthError(AuthFailureReason.MALFORMED, f"Credential rejected: {e}") from e
        except (jwt.InvalidKeyError, TypeError) as e:
            # Key type does not match the algorithm named in the header
            raise AuthError(AuthFailureReason.SIGNATURE_INVALID, "Credential key does not match its algorithm") from e

        if self.authorized_parties:
            azp = claims.get("azp")
            if azp not in self.authorized_parties:
                raise AuthError(AuthFailureReason.CLAIMS_INVALID, "Credential issued for an unauthorized party")

        plan = claims.get(self.plan_claim)
        return VerifiedCredential(
            subject=str(claims["sub"]),
            expires_at=int(claims["exp"]),
            plan=plan if isinstance(plan, str) else None,
            claims=claims,
        )
