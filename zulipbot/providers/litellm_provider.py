"""LiteLLM provider implementation for multi-provider support."""

import json
import time
from typing import Any, AsyncIterator
from dataclasses import dataclass

import litellm
from litellm import acompletion
from loguru import logger

from zulipbot.providers.base import LLMProvider, LLMResponse, StreamChunk, ToolCallRequest


@dataclass
class ProviderHealth:
    """Health status of a model."""
    healthy: bool = True
    last_failure: float = 0.0
    failure_count: int = 0
    cooldown_until: float = 0.0
    last_error: str = ""

    def mark_failed(self, error: str, cooldown_seconds: int = 300) -> None:
        """Mark as failed and start cooldown."""
        self.healthy = False
        self.last_failure = time.time()
        self.failure_count += 1
        self.cooldown_until = time.time() + cooldown_seconds
        self.last_error = error

    def mark_success(self) -> None:
        """Mark as healthy after successful call."""
        self.healthy = True
        self.failure_count = 0
        self.last_error = ""

    def is_available(self) -> bool:
        """Check if available (healthy or cooldown expired)."""
        if self.healthy:
            return True
        return time.time() >= self.cooldown_until


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM.

    Features:
    - Any LiteLLM model string (provider/model)
    - Model failover with health tracking and cooldown
    - Streaming with tool-call accumulation
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "anthropic/claude-sonnet-4-5",
        fallback_models: list[str] | None = None,
        cooldown_seconds: int = 300,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.fallback_models = fallback_models or []
        self.cooldown_seconds = cooldown_seconds

        # Health tracking (per model)
        self._model_health: dict[str, ProviderHealth] = {}

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True

    def _get_model_health(self, model: str) -> ProviderHealth:
        """Get or create health tracking for a model."""
        if model not in self._model_health:
            self._model_health[model] = ProviderHealth()
        return self._model_health[model]

    def _models_to_try(self, model: str) -> list[str]:
        return [model] + [fb for fb in self.fallback_models if fb != model]

    def _build_kwargs(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        max_tokens: int,
        temperature: float,
        stream: bool = False,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if stream:
            kwargs["stream"] = True
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM with model failover.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            tools: Optional list of tool definitions in OpenAI format.
            model: Model identifier (e.g., 'anthropic/claude-sonnet-4-5').
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse with content and/or tool calls. If every model
            fails, finish_reason is "error".
        """
        model = model or self.default_model
        last_error = ""

        for try_model in self._models_to_try(model):
            health = self._get_model_health(try_model)

            # Skip unhealthy models
            if not health.is_available():
                continue

            try:
                response = await acompletion(
                    **self._build_kwargs(try_model, messages, tools, max_tokens, temperature)
                )
            except Exception as e:
                last_error = str(e)
                health.mark_failed(last_error, self.cooldown_seconds)
                logger.warning(f"Model {try_model} failed: {last_error}")
                continue

            health.mark_success()
            parsed = self._parse_response(response)
            if parsed.usage:
                logger.debug(f"Model {try_model} used {parsed.usage.get('total_tokens', 0)} tokens")
            return parsed

        # All models failed
        return LLMResponse(
            content=f"Error: All models failed. Last error: {last_error}",
            finish_reason="error",
        )

    async def chat_stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """
        Send a streaming chat completion request.

        Falls over to the next model only while nothing has been yielded;
        text already sent to the chat cannot be taken back.

        Yields:
            StreamChunk objects with content or tool call data.
        """
        model = model or self.default_model
        last_error = ""

        for try_model in self._models_to_try(model):
            health = self._get_model_health(try_model)
            if not health.is_available():
                continue

            started = False
            try:
                async for chunk in self._stream_model(
                    try_model, messages, tools, max_tokens, temperature
                ):
                    if chunk.is_final:
                        health.mark_success()
                    started = True
                    yield chunk
            except Exception as e:
                last_error = str(e)
                health.mark_failed(last_error, self.cooldown_seconds)
                logger.warning(f"Model {try_model} stream failed: {last_error}")
                if started:
                    break
                continue

            health.mark_success()
            return

        yield StreamChunk(
            content=f"Error: All models failed. Last error: {last_error}",
            is_final=True,
            finish_reason="error",
        )

    async def _stream_model(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        max_tokens: int,
        temperature: float,
    ) -> AsyncIterator[StreamChunk]:
        """Stream from a single model."""
        response = await acompletion(
            **self._build_kwargs(model, messages, tools, max_tokens, temperature, stream=True)
        )

        # Track accumulated tool calls
        tool_calls: dict[int, dict[str, str]] = {}

        async for chunk in response:
            choice = chunk.choices[0] if chunk.choices else None
            if not choice:
                continue

            delta = getattr(choice, "delta", None)
            if not delta:
                continue

            if getattr(delta, "content", None):
                yield StreamChunk(content=delta.content)

            for tc in getattr(delta, "tool_calls", None) or []:
                entry = tool_calls.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                if tc.id:
                    entry["id"] = tc.id
                function = getattr(tc, "function", None)
                if function is not None:
                    if function.name:
                        entry["name"] = function.name
                    if function.arguments:
                        entry["arguments"] += function.arguments

            if getattr(choice, "finish_reason", None):
                for tc_data in tool_calls.values():
                    yield StreamChunk(
                        is_tool_call=True,
                        tool_call_id=tc_data["id"],
                        tool_call_name=tc_data["name"],
                        tool_call_arguments=tc_data["arguments"],
                    )
                yield StreamChunk(is_final=True, finish_reason=choice.finish_reason)
                return

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        for tc in getattr(message, "tool_calls", None) or []:
            tool_calls.append(ToolCallRequest(
                id=tc.id,
                name=tc.function.name,
                arguments=parse_tool_arguments(tc.function.arguments),
            ))

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model


def parse_tool_arguments(args: Any) -> dict[str, Any]:
    """Decode tool call arguments that may arrive as a JSON string."""
    if isinstance(args, dict):
        return args
    if not args:
        return {}
    try:
        parsed = json.loads(args)
    except json.JSONDecodeError:
        return {"raw": args}
    return parsed if isinstance(parsed, dict) else {"value": parsed}
