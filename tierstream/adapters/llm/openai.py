"""OpenAI-compatible LLM adapter."""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from tierstream.adapters.llm.base import LLMAdapter


class OpenAIAdapter(LLMAdapter):
    """OpenAI chat completions API adapter (also fits compatible gateways)."""

    name = "openai"
    api_path = "/chat/completions"

    def prepare_request(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Prepare OpenAI request payload."""
        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
        }

        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature

        return payload

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    async def stream_chat(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream chat completion from OpenAI."""
        url = f"{base_url.rstrip('/')}{self.api_path}"

        async with client.stream("POST", url, json=payload, headers=headers) as response:
            await self.raise_for_status(response, "OpenAI")

            async for line in response.aiter_lines():
                if not line.strip():
                    continue

                # OpenAI SSE format: "data: {...}"
                if line.startswith("data: "):
                    data_str = line[6:]
                    if data_str == "[DONE]":
                        return

                    try:
                        yield json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
