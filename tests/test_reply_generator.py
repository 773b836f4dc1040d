"""
Tests for the LLM reply generator, block coalescing and history.
"""

import asyncio

import pytest

from zulipbot.agent.reply import (
    NO_RESPONSE_TEXT,
    AgentReplyGenerator,
    BlockCoalescer,
    ConversationHistory,
    with_idle_ticks,
)
from zulipbot.agent.tools.base import Tool, ToolRegistry
from zulipbot.auto_reply.context import InboundContext
from zulipbot.config.schema import AgentDefaults, BlockStreamingCoalesceConfig
from zulipbot.providers.base import LLMProvider, LLMResponse, StreamChunk, ToolCallRequest


class ScriptedProvider(LLMProvider):
    """Returns canned responses in order and records every call."""

    def __init__(self, responses: list[LLMResponse]):
        super().__init__()
        self.responses = list(responses)
        self.calls: list[dict] = []

    async def chat(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools, "model": model})
        return self.responses.pop(0)

    def get_default_model(self) -> str:
        return "test/model"


class StreamingProvider(ScriptedProvider):
    """Streams scripted chunks, optionally pausing between them."""

    def __init__(self, chunks: list[StreamChunk | float]):
        super().__init__([])
        self.chunks = chunks

    async def chat_stream(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        for item in self.chunks:
            if isinstance(item, float):
                await asyncio.sleep(item)
            else:
                yield item


class EchoTool(Tool):
    name = "echo"
    description = "Echo text back"
    parameters = {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, text: str = "", **kwargs):
        return f"echo: {text}"


def make_ctx(body: str = "hello", authorized: bool = True, session_key: str = "agent:main:main") -> InboundContext:
    return InboundContext(
        body=f"[Zulip Alice Example (alice@example.com) 2023-11-14T22:13:20+00:00] {body}",
        body_for_agent=body,
        raw_body=body,
        command_body=body,
        from_="zulip:42",
        to="dm:42",
        session_key=session_key,
        main_session_key="agent:main:main",
        account_id="default",
        agent_id="main",
        chat_type="direct",
        conversation_label="Alice Example (alice@example.com)",
        sender_name="Alice Example",
        sender_id="42",
        sender_email="alice@example.com",
        message_sid="100",
        timestamp_ms=1700000000000,
        command_authorized=authorized,
        originating_to="dm:42",
    )


def make_tools() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(EchoTool())
    return registry


async def collect(generator: AgentReplyGenerator, ctx: InboundContext) -> list[str]:
    return [payload.text async for payload in generator.generate(ctx)]


class TestAgentReplyGenerator:
    """Tests for AgentReplyGenerator without streaming."""

    @pytest.mark.asyncio
    async def test_simple_reply(self):
        """Test that a plain completion becomes one payload."""
        provider = ScriptedProvider([LLMResponse(content="Hi Alice!")])
        generator = AgentReplyGenerator(provider)

        assert await collect(generator, make_ctx()) == ["Hi Alice!"]

        messages = provider.calls[0]["messages"]
        assert messages[0]["role"] == "system"
        assert "Conversation: Alice Example (alice@example.com)" in messages[0]["content"]
        assert messages[-1] == {"role": "user", "content": make_ctx().body}
        assert provider.calls[0]["model"] == AgentDefaults().model

    @pytest.mark.asyncio
    async def test_history_carries_over(self):
        """Test that the previous exchange is sent with the next message."""
        provider = ScriptedProvider([LLMResponse(content="First"), LLMResponse(content="Second")])
        generator = AgentReplyGenerator(provider)

        await collect(generator, make_ctx("one"))
        await collect(generator, make_ctx("two"))

        messages = provider.calls[1]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[2]["content"] == "First"
        assert generator.history.get("agent:main:main")[-1] == {"role": "assistant", "content": "Second"}

    @pytest.mark.asyncio
    async def test_tool_loop(self):
        """Test that tool calls run and their results go back to the model."""
        provider = ScriptedProvider([
            LLMResponse(
                content="",
                tool_calls=[ToolCallRequest(id="call_1", name="echo", arguments={"text": "hi"})],
                finish_reason="tool_calls",
            ),
            LLMResponse(content="The tool said hi."),
        ])
        generator = AgentReplyGenerator(provider, tools=make_tools())

        assert await collect(generator, make_ctx()) == ["The tool said hi."]

        assert provider.calls[0]["tools"][0]["function"]["name"] == "echo"
        followup = provider.calls[1]["messages"]
        assert followup[-2]["role"] == "assistant"
        assert followup[-2]["tool_calls"][0]["function"] == {"name": "echo", "arguments": '{"text": "hi"}'}
        assert followup[-1] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "name": "echo",
            "content": "echo: hi",
        }

    @pytest.mark.asyncio
    async def test_unauthorized_sender_gets_no_tools(self):
        """Test that tools are withheld when the sender is not authorized."""
        provider = ScriptedProvider([LLMResponse(content="ok")])
        generator = AgentReplyGenerator(provider, tools=make_tools())

        await collect(generator, make_ctx(authorized=False))

        assert provider.calls[0]["tools"] is None
        assert "not authorized" in provider.calls[0]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_provider_error_raises(self):
        """Test that an error response is raised rather than sent as a reply."""
        provider = ScriptedProvider([LLMResponse(content="Error calling LLM: quota", finish_reason="error")])
        generator = AgentReplyGenerator(provider)

        with pytest.raises(RuntimeError, match="quota"):
            await collect(generator, make_ctx())

    @pytest.mark.asyncio
    async def test_max_iterations(self):
        """Test the fallback text when the model never stops calling tools."""
        call = ToolCallRequest(id="c", name="echo", arguments={})
        provider = ScriptedProvider([LLMResponse(content="", tool_calls=[call]) for _ in range(2)])
        generator = AgentReplyGenerator(
            provider,
            defaults=AgentDefaults(max_tool_iterations=2),
            tools=make_tools(),
        )

        assert await collect(generator, make_ctx()) == [NO_RESPONSE_TEXT]
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_empty_completion(self):
        """Test the fallback text for an empty answer."""
        generator = AgentReplyGenerator(ScriptedProvider([LLMResponse(content="")]))
        assert await collect(generator, make_ctx()) == [NO_RESPONSE_TEXT]


class TestBlockStreaming:
    """Tests for streamed replies released in blocks."""

    @pytest.mark.asyncio
    async def test_blocks_split_at_paragraphs(self):
        """Test that streamed text is released at paragraph breaks."""
        provider = StreamingProvider([
            StreamChunk(content="Hello "),
            StreamChunk(content="world.\n\n"),
            StreamChunk(content="Second part."),
            StreamChunk(is_final=True, finish_reason="stop"),
        ])
        generator = AgentReplyGenerator(
            provider,
            block_streaming=True,
            coalesce=BlockStreamingCoalesceConfig(min_chars=10, idle_ms=10_000),
        )

        assert await collect(generator, make_ctx()) == ["Hello world.", "Second part."]

    @pytest.mark.asyncio
    async def test_idle_flush(self):
        """Test that buffered text is released when the stream goes quiet."""
        provider = StreamingProvider([
            StreamChunk(content="First."),
            0.2,
            StreamChunk(content="Second."),
            StreamChunk(is_final=True, finish_reason="stop"),
        ])
        generator = AgentReplyGenerator(
            provider,
            block_streaming=True,
            coalesce=BlockStreamingCoalesceConfig(min_chars=1000, idle_ms=20),
        )

        assert await collect(generator, make_ctx()) == ["First.", "Second."]

    @pytest.mark.asyncio
    async def test_stream_error_raises(self):
        """Test that a failed stream raises."""
        provider = StreamingProvider([
            StreamChunk(content="partial"),
            StreamChunk(content="rate limited", is_final=True, finish_reason="error"),
        ])
        generator = AgentReplyGenerator(provider, block_streaming=True)

        with pytest.raises(RuntimeError, match="rate limited"):
            await collect(generator, make_ctx())

    @pytest.mark.asyncio
    async def test_tool_calls_through_default_stream(self):
        """Test that a provider without native streaming still runs tools."""
        provider = ScriptedProvider([
            LLMResponse(content="", tool_calls=[ToolCallRequest(id="c1", name="echo", arguments={"text": "x"})]),
            LLMResponse(content="Done."),
        ])
        generator = AgentReplyGenerator(provider, tools=make_tools(), block_streaming=True)

        assert await collect(generator, make_ctx()) == ["Done."]
        assert provider.calls[1]["messages"][-1]["content"] == "echo: x"


class TestBlockCoalescer:
    """Tests for BlockCoalescer."""

    def test_holds_short_text(self):
        """Test that text below min_chars stays buffered."""
        coalescer = BlockCoalescer(min_chars=20)
        assert coalescer.push("short\n\nparagraphs") == []
        assert coalescer.pending == len("short\n\nparagraphs")
        assert coalescer.flush() == "short\n\nparagraphs"
        assert coalescer.pending == 0

    def test_without_paragraph_break(self):
        """Test that long text without a break waits for flush."""
        coalescer = BlockCoalescer(min_chars=5)
        assert coalescer.push("one long line") == []
        assert coalescer.flush() == "one long line"

    def test_blank_flush(self):
        """Test that whitespace-only buffers flush to nothing."""
        coalescer = BlockCoalescer(min_chars=5)
        coalescer.push("  \n")
        assert coalescer.flush() == ""


class TestIdleTicks:
    """Tests for with_idle_ticks."""

    @pytest.mark.asyncio
    async def test_ticks_while_quiet(self):
        """Test that None is yielded while the source is slow."""
        async def source():
            yield "a"
            await asyncio.sleep(0.15)
            yield "b"

        items = [item async for item in with_idle_ticks(source(), 0.05)]

        assert items[0] == "a"
        assert items[-1] == "b"
        assert None in items


class TestConversationHistory:
    """Tests for ConversationHistory."""

    def test_trims_to_limit(self):
        """Test that only the newest messages are kept."""
        history = ConversationHistory(limit=3)
        for i in range(5):
            history.add("s", "user", f"m{i}")

        assert [m["content"] for m in history.get("s")] == ["m2", "m3", "m4"]

    def test_get_returns_copy(self):
        """Test that callers cannot mutate stored history."""
        history = ConversationHistory()
        history.add("s", "user", "hi")
        history.get("s").append({"role": "user", "content": "x"})
        assert len(history.get("s")) == 1

    def test_clear(self):
        """Test clearing one or all sessions."""
        history = ConversationHistory()
        history.add("a", "user", "hi")
        history.add("b", "user", "hi")

        history.clear("a")
        assert history.get("a") == []
        assert len(history) == 1

        history.clear()
        assert len(history) == 0
