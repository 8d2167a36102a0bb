"""Single-attempt streaming call to the upstream model provider."""
import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from tierstream.adapters.llm.anthropic import AnthropicStreamError
from tierstream.adapters.llm.base import LLMAdapter
from tierstream.core.errors import UpstreamError, UpstreamErrorKind
from tierstream.core.events import StreamFragment
from tierstream.metrics.prometheus import upstream_errors_total

logger = logging.getLogger(__name__)

_ANTHROPIC_KINDS = {
    "authentication_error": UpstreamErrorKind.AUTH,
    "permission_error": UpstreamErrorKind.AUTH,
    "rate_limit_error": UpstreamErrorKind.RATE_LIMIT,
    "overloaded_error": UpstreamErrorKind.RATE_LIMIT,
}


def classify_upstream_error(exc: BaseException) -> UpstreamError:
    """Map a provider or transport exception to an UpstreamError."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return UpstreamError(UpstreamErrorKind.TIMEOUT, type(exc).__name__)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in (401, 403):
            kind = UpstreamErrorKind.AUTH
        elif status == 429:
            kind = UpstreamErrorKind.RATE_LIMIT
        else:
            kind = UpstreamErrorKind.UNKNOWN
        return UpstreamError(kind, f"provider returned {status}")

    if isinstance(exc, AnthropicStreamError):
        kind = _ANTHROPIC_KINDS.get(exc.error_type, UpstreamErrorKind.UNKNOWN)
        return UpstreamError(kind, exc.error_type)

    return UpstreamError(UpstreamErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")


class ModelStreamAdapter:
    """Open exactly one streaming model call per request.

    There are no retries. A total deadline bounds the whole call (connect,
    headers and every chunk wait) and is kept below the host's own request
    limit so a slow provider surfaces as an in-band timeout rather than a
    killed request.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        base_url: str,
        api_key: str,
        timeout_s: float = 25.0,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            adapter: Provider wire-format adapter
            base_url: Provider API base URL
            api_key: Provider credential
            timeout_s: Total deadline for one streaming call
            max_tokens: Completion token limit (provider default if None)
            temperature: Sampling temperature (provider default if None)
            transport: httpx transport override (tests, proxies)
        """
        self.adapter = adapter
        self.base_url = base_url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._transport = transport

    @property
    def provider(self) -> str:
        return self.adapter.name

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s, connect=min(self.timeout_s, 5.0)),
            transport=self._transport,
        )

    async def stream(
        self,
        model: str,
        messages: List[Dict[str, str]],
    ) -> AsyncIterator[StreamFragment]:
        """Yield text fragments in arrival order.

        Any early termination yields exactly one error fragment, after which
        the sequence ends. Closing the iterator releases the upstream
        connection.
        """
        payload = self.adapter.prepare_request(
            messages=messages,
            model=model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        headers: Dict[str, Any] = {"Content-Type": "application/json"}
        headers.update(self.adapter.auth_headers(self.api_key))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_s

        async with self._client() as client:
            chunks = self.adapter.stream_text(client, self.base_url, payload, headers)
            try:
                while True:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    try:
                        text = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        return
                    yield StreamFragment(text=text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify_upstream_error(e)
                upstream_errors_total.labels(provider=self.provider, kind=error.kind.value).inc()
                logger.warning(f"Upstream stream ended early: {error.message}")
                yield StreamFragment.failure(error)
            finally:
                await chunks.aclose()
