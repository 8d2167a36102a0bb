"""Tests for the public key set cache."""
import asyncio

import httpx
import pytest

from tierstream.core.errors import AuthError, AuthFailureReason
from tierstream.core.jwks import KeySetCache

JWKS_URL = "https://issuer.test/.well-known/jwks.json"


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _cache(server, clock=None, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    kwargs.setdefault("min_refresh_interval_s", 0)
    return KeySetCache(JWKS_URL, fetch_timeout_s=1.0, client=client, clock=clock or FakeClock(), **kwargs)


class TestKeySetCache:
    """Test fetching, caching and refreshing keys."""

    @pytest.mark.asyncio
    async def test_first_lookup_fetches(self, jwks_server):
        cache = _cache(jwks_server)

        key = await cache.get_key("key-1")

        assert key is not None
        assert jwks_server.calls == 1
        assert cache.key_ids == frozenset({"key-1"})

    @pytest.mark.asyncio
    async def test_cached_key_not_refetched(self, jwks_server):
        cache = _cache(jwks_server)

        await cache.get_key("key-1")
        await cache.get_key("key-1")

        assert jwks_server.calls == 1

    @pytest.mark.asyncio
    async def test_unknown_kid_triggers_refresh(self, jwks_server, rogue_key, make_jwk):
        cache = _cache(jwks_server)
        await cache.get_key("key-1")

        jwks_server.document = {"keys": jwks_server.document["keys"] + [make_jwk(rogue_key, "key-2")]}
        key = await cache.get_key("key-2")

        assert key is not None
        assert jwks_server.calls == 2

    @pytest.mark.asyncio
    async def test_unknown_kid_after_refresh_is_none(self, jwks_server):
        cache = _cache(jwks_server)
        assert await cache.get_key("nope") is None

    @pytest.mark.asyncio
    async def test_refresh_interval_limits_unknown_kid_fetches(self, jwks_server):
        clock = FakeClock()
        cache = _cache(jwks_server, clock=clock, min_refresh_interval_s=10)

        await cache.get_key("key-1")
        assert await cache.get_key("nope") is None
        assert await cache.get_key("nope") is None
        assert jwks_server.calls == 1

        clock.now += 11
        assert await cache.get_key("nope") is None
        assert jwks_server.calls == 2

    @pytest.mark.asyncio
    async def test_stale_keys_refreshed(self, jwks_server):
        clock = FakeClock()
        cache = _cache(jwks_server, clock=clock, max_age_s=60)

        await cache.get_key("key-1")
        clock.now += 61
        await cache.get_key("key-1")

        assert jwks_server.calls == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_known_keys(self, jwks_server):
        clock = FakeClock()
        cache = _cache(jwks_server, clock=clock, max_age_s=60)
        original = await cache.get_key("key-1")

        jwks_server.fail_with = httpx.ConnectError("down")
        clock.now += 61

        assert await cache.get_key("key-1") is original
        assert cache.key_ids == frozenset({"key-1"})

    @pytest.mark.asyncio
    async def test_unreachable_source_without_cached_key(self, jwks_server):
        jwks_server.fail_with = httpx.ConnectError("down")
        cache = _cache(jwks_server)

        with pytest.raises(AuthError) as exc_info:
            await cache.get_key("key-1")

        assert exc_info.value.reason is AuthFailureReason.KEY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_recent_failure_still_reports_unavailable(self, jwks_server):
        jwks_server.fail_with = httpx.ConnectError("down")
        cache = _cache(jwks_server, min_refresh_interval_s=10)

        for _ in range(2):
            with pytest.raises(AuthError) as exc_info:
                await cache.get_key("key-1")
            assert exc_info.value.reason is AuthFailureReason.KEY_UNAVAILABLE
        assert jwks_server.calls == 1

    @pytest.mark.asyncio
    async def test_error_status_is_unavailable(self, jwks_server):
        jwks_server.status_code = 503
        cache = _cache(jwks_server)

        with pytest.raises(AuthError) as exc_info:
            await cache.get_key("key-1")
        assert exc_info.value.reason is AuthFailureReason.KEY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_unusable_entries_skipped(self, jwks_server):
        jwks_server.document = {
            "keys": [{"kty": "XYZ", "kid": "broken"}, {"kty": "RSA"}]
            + jwks_server.document["keys"]
        }
        cache = _cache(jwks_server)

        assert await cache.get_key("key-1") is not None
        assert cache.key_ids == frozenset({"key-1"})

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_fetch(self, jwks_server):
        cache = _cache(jwks_server)

        keys = await asyncio.gather(*(cache.get_key("key-1") for _ in range(10)))

        assert all(key is not None for key in keys)
        assert jwks_server.calls == 1

    @pytest.mark.asyncio
    async def test_outage_does_not_refetch_for_every_stale_lookup(self, jwks_server):
        clock = FakeClock()
        cache = _cache(jwks_server, clock=clock, max_age_s=60, min_refresh_interval_s=10)
        original = await cache.get_key("key-1")

        jwks_server.fail_with = httpx.ConnectError("down")
        clock.now += 61
        for _ in range(5):
            assert await cache.get_key("key-1") is original

        assert jwks_server.calls == 2

        clock.now += 11
        assert await cache.get_key("key-1") is original
        assert jwks_server.calls == 3

    @pytest.mark.asyncio
    async def test_stale_key_served_while_refresh_in_flight(self, jwks):
        fetching = asyncio.Event()
        release = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) > 1:
                fetching.set()
                await release.wait()
            return httpx.Response(200, json=jwks)

        clock = FakeClock()
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        cache = KeySetCache(JWKS_URL, fetch_timeout_s=5.0, max_age_s=60, client=client, clock=clock)
        original = await cache.get_key("key-1")

        clock.now += 61
        refresh = asyncio.create_task(cache.get_key("key-1"))
        await fetching.wait()

        concurrent = await asyncio.wait_for(cache.get_key("key-1"), timeout=1.0)

        assert concurrent is original
        assert not refresh.done()

        release.set()
        assert await refresh is not None
        assert len(calls) == 2
