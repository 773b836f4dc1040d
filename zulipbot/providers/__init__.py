"""LLM provider abstraction module."""

from zulipbot.providers.base import LLMProvider, LLMResponse, StreamChunk, ToolCallRequest
from zulipbot.providers.litellm_provider import LiteLLMProvider, ProviderHealth

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ToolCallRequest",
    "LiteLLMProvider",
    "StreamChunk",
    "ProviderHealth",
]
