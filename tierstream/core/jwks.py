"""Process-scoped cache of the public keys that sign bearer credentials."""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
import jwt

from tierstream.core.errors import AuthError, AuthFailureReason
from tierstream.metrics.prometheus import jwks_refresh_total

logger = logging.getLogger(__name__)


class KeySetFetchError(Exception):
    """Raised when the key source cannot be fetched or parsed."""
    pass


class KeySetCache:
    """Public key set cached by key identifier.

    Keys are fetched on demand and refreshed when a credential references an
    unknown key id or when the cached set is older than ``max_age_s``. Only one
    refresh runs at a time; a stale key may be served while a refresh is in
    flight. A failed refresh never drops keys that are already cached, and a
    cached key is served without refetching for ``min_refresh_interval_s``
    after any fetch attempt.
    """

    def __init__(
        self,
        jwks_url: str,
        fetch_timeout_s: float = 3.0,
        max_age_s: float = 3600.0,
        min_refresh_interval_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            jwks_url: URL returning the current JWKS document
            fetch_timeout_s: Total timeout for one key set fetch
            max_age_s: Age after which cached keys are refreshed
            min_refresh_interval_s: Minimum spacing between fetch attempts
            client: HTTP client to use (one is created if omitted)
            clock: Monotonic clock, injectable for tests
        """
        self.jwks_url = jwks_url
        self.fetch_timeout_s = fetch_timeout_s
        self.max_age_s = max_age_s
        self.min_refresh_interval_s = min_refresh_interval_s
        self._client = client
        self._owns_client = client is None
        self._clock = clock

        self._keys: Dict[str, Any] = {}
        self._fetched_at: Optional[float] = None
        self._last_attempt_at: Optional[float] = None
        self._last_error: Optional[str] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def key_ids(self) -> frozenset:
        return frozenset(self._keys)

    @property
    def last_error(self) -> Optional[str]:
        """Why the most recent fetch failed, or None if it succeeded."""
        return self._last_error

    def _is_stale(self) -> bool:
        if self._fetched_at is None:
            return True
        return (self._clock() - self._fetched_at) >= self.max_age_s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.fetch_timeout_s, connect=min(self.fetch_timeout_s, 2.0)),
            )
        return self._client

    async def get_key(self, kid: str) -> Optional[Any]:
        """Return the verification key for ``kid``.

        Returns:
            The public key object, or None if the key source does not know ``kid``.

        Raises:
            AuthError: If ``kid`` is not cached and the key source is unreachable.
        """
        key = self._keys.get(kid)
        if key is not None and not self._is_stale():
            return key

        if key is not None and self._lock.locked():
            # Another request is refreshing; the cached key is still usable.
            return key

        generation = self._generation
        async with self._lock:
            if self._generation != generation:
                # A refresh completed while we waited for the lock.
                return self._keys.get(kid)

            if key is not None and self._refreshed_recently():
                # The key source was tried moments ago; keep serving the cached key.
                return key

            if key is None and self._refreshed_recently():
                if self._last_error is not None:
                    raise AuthError(
                        AuthFailureReason.KEY_UNAVAILABLE,
                        "Verification keys are currently unavailable",
                    )
                logger.info(f"Unknown key id '{kid}' within refresh interval, not refetching")
                return None

            try:
                await self._refresh()
                self._last_error = None
            except KeySetFetchError as e:
                self._last_error = str(e)
                if key is not None:
                    logger.warning(f"Key set refresh failed, keeping last known keys: {e}")
                    return key
                logger.error(f"Key set unavailable and key id '{kid}' not cached: {e}")
                raise AuthError(
                    AuthFailureReason.KEY_UNAVAILABLE,
                    "Verification keys are currently unavailable",
                ) from e

        return self._keys.get(kid)

    def _refreshed_recently(self) -> bool:
        if self._last_attempt_at is None:
            return False
        return (self._clock() - self._last_attempt_at) < self.min_refresh_interval_s

    async def _refresh(self) -> None:
        """Fetch the key set and replace the cached keys. Caller holds the lock."""
        self._last_attempt_at = self._clock()
        try:
            response = await asyncio.wait_for(
                self._get_client().get(self.jwks_url, headers={"Accept": "application/json"}),
                timeout=self.fetch_timeout_s,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            jwks_refresh_total.labels(outcome="error").inc()
            raise KeySetFetchError(f"failed to fetch {self.jwks_url}: {type(e).__name__}") from e

        if response.status_code >= 400:
            jwks_refresh_total.labels(outcome="error").inc()
            raise KeySetFetchError(f"key source returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            jwks_refresh_total.labels(outcome="error").inc()
            raise KeySetFetchError("key source returned invalid JSON") from e

        keys = self._parse_keys(payload)
        if not keys:
            jwks_refresh_total.labels(outcome="error").inc()
            raise KeySetFetchError("key source returned no usable keys")

        self._keys = keys
        self._fetched_at = self._clock()
        self._generation += 1
        jwks_refresh_total.labels(outcome="success").inc()
        logger.info(f"Key set refreshed: {len(keys)} key(s) from {self.jwks_url}")

    @staticmethod
    def _parse_keys(payload: Any) -> Dict[str, Any]:
        entries = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            return {}

        keys: Dict[str, Any] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            kid = entry.get("kid")
            if not isinstance(kid, str) or not kid:
                continue
            try:
                keys[kid] = jwt.PyJWK(entry).key
            except (jwt.PyJWKError, jwt.InvalidKeyError, KeyError, ValueError) as e:
                logger.warning(f"Skipping unusable key '{kid}': {e}")
        return keys

    async def close(self):
        """Close the HTTP client if this cache created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
