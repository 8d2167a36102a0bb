"""Anthropic Claude LLM adapter."""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from tierstream.adapters.llm.base import LLMAdapter

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(LLMAdapter):
    """Anthropic Claude API adapter."""

    name = "anthropic"
    api_path = "/messages"

    def prepare_request(
        self,
        messages: List[Dict[str, str]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Prepare Anthropic request payload.

        System messages move to the top-level ``system`` field.
        """
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload = {
            "model": model,
            "messages": [m for m in messages if m["role"] != "system"],
            "max_tokens": max_tokens or 1024,
            "stream": True,
        }

        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature

        return payload

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}

    async def stream_chat(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> AsyncIterator[Dict[str, Any]]:
        """Stream chat completion from Anthropic.

        Anthropic uses SSE format with event types:
        - message_start: Initial message metadata
        - content_block_delta: Delta text chunks
        - message_stop: End of message
        - error: Provider failure after the stream started
        """
        url = f"{base_url.rstrip('/')}{self.api_path}"

        async with client.stream("POST", url, json=payload, headers=headers) as response:
            await self.raise_for_status(response, "Anthropic")

            current_event_type = None

            async for line in response.aiter_lines():
                if not line.strip():
                    continue

                # Anthropic SSE format: "event: <type>" and "data: {...}"
                if line.startswith("event: "):
                    current_event_type = line[7:].strip()
                elif line.startswith("data: "):
                    try:
                        chunk_data = json.loads(line[6:])
                    except json.JSONDecodeError:
                        continue

                    if current_event_type == "content_block_delta":
                        text = chunk_data.get("delta", {}).get("text", "")
                        if text:
                            # Yield in OpenAI-like format for compatibility
                            yield {"choices": [{"delta": {"content": text}, "finish_reason": None}]}
                    elif current_event_type == "message_stop":
                        return
                    elif current_event_type == "error":
                        error = chunk_data.get("error", {})
                        raise AnthropicStreamError(error.get("type", "unknown"), error.get("message", ""))


class AnthropicStreamError(Exception):
    """In-stream error event sent by Anthropic (e.g. overloaded_error)."""

    def __init__(self, error_type: str, message: str):
        super().__init__(f"{error_type}: {message}")
        self.error_type = error_type
