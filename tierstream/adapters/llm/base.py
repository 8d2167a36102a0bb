"""Base LLM adapter interface."""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx


class LLMAdapter(ABC):
    """Base class for LLM provider adapters.

    Adapters only know a provider's wire format. Deadlines, error
    classification and retries (there are none) belong to the stream adapter.
    """

    name: str = "base"
    api_path: str = "/chat/completions"

    @abstractmethod
    def prepare_request(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Prepare provider-specific streaming request payload."""
        pass

    @abstractmethod
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        """Provider-specific authentication headers."""
        pass

    @abstractmethod
    def stream_chat(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream chat completion chunks from the provider.

        Must yield chunks in the OpenAI delta shape
        (``{"choices": [{"delta": {"content": ...}}]}``).

        Raises:
            httpx.HTTPStatusError: If the provider rejects the request
        """
        pass

    @staticmethod
    def delta_text(chunk: Dict[str, Any]) -> str:
        """Text content of one OpenAI-shaped chunk ('' if none)."""
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    async def stream_text(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[str]:
        """Stream non-empty text deltas in arrival order."""
        chunks = self.stream_chat(client, base_url, payload, headers)
        try:
            async for chunk in chunks:
                text = self.delta_text(chunk)
                if text:
                    yield text
        finally:
            await chunks.aclose()

    @staticmethod
    async def raise_for_status(response: httpx.Response, provider: str) -> None:
        """Raise HTTPStatusError for an error response, after draining its body."""
        if response.status_code >= 400:
            await response.aread()
            raise httpx.HTTPStatusError(
                f"{provider} API error: {response.status_code}",
                request=response.request,
                response=response,
            )
