"""Base LLM provider interface."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


@dataclass
class ToolCallRequest:
    """A tool call requested by the model."""
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class StreamChunk:
    """A chunk from a streaming response."""
    content: str = ""
    is_tool_call: bool = False
    tool_call_id: str = ""
    tool_call_name: str = ""
    tool_call_arguments: str = ""
    finish_reason: str = ""
    is_final: bool = False


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return len(self.tool_calls) > 0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            tools: Optional list of tool definitions.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse with content and/or tool calls.
        """
        pass

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat completion.

        Providers without native streaming yield the whole response as
        one content chunk, its tool calls, and a final chunk.
        """
        response = await self.chat(messages, tools, model, max_tokens, temperature)
        if response.content:
            yield StreamChunk(content=response.content)
        for tc in response.tool_calls:
            yield StreamChunk(
                is_tool_call=True,
                tool_call_id=tc.id,
                tool_call_name=tc.name,
                tool_call_arguments=json.dumps(tc.arguments),
            )
        yield StreamChunk(is_final=True, finish_reason=response.finish_reason)

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass
