"""LLM provider adapters."""

from tierstream.adapters.llm.base import LLMAdapter
from tierstream.adapters.llm.factory import detect_provider, get_adapter

__all__ = ["LLMAdapter", "detect_provider", "get_adapter"]
