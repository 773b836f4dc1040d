"""
Reply generation: turns an inbound context into reply payloads.

The agent:
1. Builds messages from the system prompt, session history and the new message
2. Calls the LLM, streaming when block streaming is enabled
3. Executes tool calls until the model answers or iterations run out
4. Yields reply payloads for the dispatcher and records the exchange in history
"""

import asyncio
import json
from typing import Any, AsyncIterator, Protocol, TypeVar

from loguru import logger

from zulipbot.agent.tools.base import ToolRegistry
from zulipbot.auto_reply.context import InboundContext
from zulipbot.bus.events import ReplyPayload
from zulipbot.config.schema import AgentDefaults, BlockStreamingCoalesceConfig
from zulipbot.providers.base import LLMProvider, StreamChunk, ToolCallRequest
from zulipbot.providers.litellm_provider import parse_tool_arguments

T = TypeVar("T")

NO_RESPONSE_TEXT = "I've completed processing but have no response to give."


class ReplyGenerator(Protocol):
    """Anything that can answer an inbound message with reply payloads."""

    def generate(self, ctx: InboundContext) -> AsyncIterator[ReplyPayload]:
        ...


class ConversationHistory:
    """In-memory message history per session key, trimmed to a limit."""

    def __init__(self, limit: int = 40):
        self.limit = limit
        self._sessions: dict[str, list[dict[str, Any]]] = {}

    def get(self, session_key: str) -> list[dict[str, Any]]:
        return list(self._sessions.get(session_key, []))

    def add(self, session_key: str, role: str, content: str) -> None:
        messages = self._sessions.setdefault(session_key, [])
        messages.append({"role": role, "content": content})
        if self.limit > 0 and len(messages) > self.limit:
            del messages[:len(messages) - self.limit]

    def clear(self, session_key: str | None = None) -> None:
        if session_key is None:
            self._sessions.clear()
        else:
            self._sessions.pop(session_key, None)

    def __len__(self) -> int:
        return len(self._sessions)


class BlockCoalescer:
    """
    Buffers streamed text into blocks of at least min_chars.

    A block is released at the last paragraph break once the buffer
    reaches min_chars; whatever is left comes out on flush().
    """

    def __init__(self, min_chars: int = 1500):
        self.min_chars = min_chars
        self._buffer = ""

    def push(self, text: str) -> list[str]:
        self._buffer += text
        blocks: list[str] = []
        while len(self._buffer) >= self.min_chars:
            cut = self._buffer.rfind("\n\n")
            if cut <= 0:
                break
            block, self._buffer = self._buffer[:cut], self._buffer[cut + 2:]
            if block.strip():
                blocks.append(block)
        return blocks

    def flush(self) -> str:
        block, self._buffer = self._buffer, ""
        return block if block.strip() else ""

    @property
    def pending(self) -> int:
        return len(self._buffer)


_DONE = object()


async def _anext(iterator: AsyncIterator[T]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _DONE


async def with_idle_ticks(
    stream: AsyncIterator[T],
    idle_seconds: float,
) -> AsyncIterator[T | None]:
    """Yield items from stream, and None whenever it stays quiet for idle_seconds."""
    iterator = stream.__aiter__()
    pending: asyncio.Task | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(_anext(iterator))
            done, _ = await asyncio.wait({pending}, timeout=idle_seconds)
            if not done:
                yield None
                continue
            item, pending = pending.result(), None
            if item is _DONE:
                return
            yield item
    finally:
        if pending is not None:
            pending.cancel()


class AgentReplyGenerator:
    """
    LLM-backed reply generator with tools and per-session history.

    With block streaming enabled, text is released in coalesced blocks while
    the model is still writing; otherwise each completion becomes one payload.
    """

    def __init__(
        self,
        provider: LLMProvider,
        defaults: AgentDefaults | None = None,
        tools: ToolRegistry | None = None,
        history: ConversationHistory | None = None,
        block_streaming: bool = False,
        coalesce: BlockStreamingCoalesceConfig | None = None,
    ):
        self.provider = provider
        self.defaults = defaults or AgentDefaults()
        self.tools = tools or ToolRegistry()
        self.history = history or ConversationHistory(self.defaults.history_limit)
        self.block_streaming = block_streaming
        self.coalesce = coalesce or BlockStreamingCoalesceConfig()
        self.model = self.defaults.model or provider.get_default_model()

    def build_messages(self, ctx: InboundContext) -> list[dict[str, Any]]:
        """System prompt, then session history, then the new message."""
        return [
            {"role": "system", "content": self._system_prompt(ctx)},
            *self.history.get(ctx.session_key),
            {"role": "user", "content": ctx.body},
        ]

    def _system_prompt(self, ctx: InboundContext) -> str:
        lines = [
            self.defaults.system_prompt,
            "",
            f"Conversation: {ctx.conversation_label}",
            f"Chat type: {ctx.chat_type}",
        ]
        if ctx.group_subject:
            lines.append(f"Stream topic: {ctx.group_subject}")
        if not ctx.command_authorized:
            lines.append("The sender is not authorized to run administrative tools.")
        return "\n".join(lines)

    async def generate(self, ctx: InboundContext) -> AsyncIterator[ReplyPayload]:
        messages = self.build_messages(ctx)
        tool_defs = self.tools.get_definitions() if ctx.command_authorized else []
        final_text: str | None = None
        delivered = False

        for iteration in range(1, self.defaults.max_tool_iterations + 1):
            if self.block_streaming:
                coalescer = BlockCoalescer(self.coalesce.min_chars)
                content = ""
                tool_calls: list[ToolCallRequest] = []
                async for item in with_idle_ticks(
                    self._stream(messages, tool_defs), self.coalesce.idle_ms / 1000
                ):
                    if item is None:
                        block = coalescer.flush()
                    elif isinstance(item, ToolCallRequest):
                        tool_calls.append(item)
                        continue
                    else:
                        content += item
                        blocks = coalescer.push(item)
                        block = "\n\n".join(blocks)
                    if block:
                        delivered = True
                        yield ReplyPayload(text=block)
                tail = coalescer.flush()
                if tail:
                    delivered = True
                    yield ReplyPayload(text=tail)
            else:
                response = await self.provider.chat(
                    messages=messages,
                    tools=tool_defs or None,
                    model=self.model,
                    max_tokens=self.defaults.max_tokens,
                    temperature=self.defaults.temperature,
                )
                if response.finish_reason == "error":
                    raise RuntimeError(response.content or "LLM request failed")
                content = response.content or ""
                tool_calls = response.tool_calls
                if not tool_calls and content.strip():
                    delivered = True
                    yield ReplyPayload(text=content)

            if not tool_calls:
                final_text = content
                break

            messages.append({
                "role": "assistant",
                "content": content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in tool_calls
                ],
            })
            for tool_call in tool_calls:
                logger.debug(f"Executing tool: {tool_call.name} (iteration {iteration})")
                result = await self.tools.execute(tool_call.name, tool_call.arguments)
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "name": tool_call.name,
                    "content": result,
                })
        else:
            logger.warning(
                f"Agent hit max tool iterations ({self.defaults.max_tool_iterations}) "
                f"for {ctx.session_key}"
            )

        if not delivered:
            final_text = NO_RESPONSE_TEXT
            yield ReplyPayload(text=final_text)

        self.history.add(ctx.session_key, "user", ctx.body)
        self.history.add(ctx.session_key, "assistant", final_text or NO_RESPONSE_TEXT)

    async def _stream(
        self,
        messages: list[dict[str, Any]],
        tool_defs: list[dict[str, Any]],
    ) -> AsyncIterator[str | ToolCallRequest]:
        """Text deltas and completed tool calls from one streamed completion."""
        chunk: StreamChunk
        async for chunk in self.provider.chat_stream(
            messages=messages,
            tools=tool_defs or None,
            model=self.model,
            max_tokens=self.defaults.max_tokens,
            temperature=self.defaults.temperature,
        ):
            if chunk.is_final:
                if chunk.finish_reason == "error":
                    raise RuntimeError(chunk.content or "LLM stream failed")
                return
            if chunk.is_tool_call:
                yield ToolCallRequest(
                    id=chunk.tool_call_id,
                    name=chunk.tool_call_name,
                    arguments=parse_tool_arguments(chunk.tool_call_arguments),
                )
            elif chunk.content:
                yield chunk.content
