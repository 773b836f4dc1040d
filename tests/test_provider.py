"""
Tests for the LiteLLM provider, with acompletion patched out.
"""

from types import SimpleNamespace as NS

import pytest

from zulipbot.providers.litellm_provider import LiteLLMProvider, parse_tool_arguments


def completion(content=None, tool_calls=None, finish_reason="stop"):
    return NS(
        choices=[NS(message=NS(content=content, tool_calls=tool_calls), finish_reason=finish_reason)],
        usage=NS(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


def delta_chunk(content=None, tool_calls=None, finish_reason=None):
    return NS(choices=[NS(delta=NS(content=content, tool_calls=tool_calls), finish_reason=finish_reason)])


def stream_of(*chunks):
    async def _gen():
        for chunk in chunks:
            yield chunk
    return _gen()


@pytest.fixture
def fake_completion(monkeypatch):
    """Patch acompletion with a scripted function and record the calls."""
    calls = []
    script = {}

    async def _acompletion(**kwargs):
        calls.append(kwargs)
        outcome = script[kwargs["model"]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome() if callable(outcome) else outcome

    monkeypatch.setattr("zulipbot.providers.litellm_provider.acompletion", _acompletion)
    return calls, script


class TestChat:
    """Tests for LiteLLMProvider.chat."""

    @pytest.mark.asyncio
    async def test_parses_content_and_tool_calls(self, fake_completion):
        """Test that tool calls and usage are decoded."""
        calls, script = fake_completion
        tool_call = NS(id="c1", function=NS(name="zulip_send", arguments='{"content": "hi"}'))
        script["m1"] = completion(tool_calls=[tool_call], finish_reason="tool_calls")

        provider = LiteLLMProvider(api_key="sk-test", default_model="m1")
        response = await provider.chat([{"role": "user", "content": "hi"}], tools=[{"type": "function"}])

        assert response.has_tool_calls
        assert response.tool_calls[0].arguments == {"content": "hi"}
        assert response.finish_reason == "tool_calls"
        assert response.usage["total_tokens"] == 15
        assert calls[0]["api_key"] == "sk-test"
        assert calls[0]["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_failover_and_cooldown(self, fake_completion):
        """Test that a failing model is skipped until its cooldown ends."""
        calls, script = fake_completion
        script["primary"] = RuntimeError("rate limited")
        script["backup"] = completion(content="from backup")

        provider = LiteLLMProvider(default_model="primary", fallback_models=["backup"])

        first = await provider.chat([{"role": "user", "content": "a"}])
        second = await provider.chat([{"role": "user", "content": "b"}])

        assert first.content == second.content == "from backup"
        assert [c["model"] for c in calls] == ["primary", "backup", "backup"]

    @pytest.mark.asyncio
    async def test_all_models_fail(self, fake_completion):
        """Test the error response when no model answers."""
        _, script = fake_completion
        script["only"] = RuntimeError("bad key")

        response = await LiteLLMProvider(default_model="only").chat([{"role": "user", "content": "a"}])

        assert response.finish_reason == "error"
        assert "bad key" in response.content


class TestChatStream:
    """Tests for LiteLLMProvider.chat_stream."""

    @pytest.mark.asyncio
    async def test_text_and_accumulated_tool_calls(self, fake_completion):
        """Test that tool-call fragments are joined before they are emitted."""
        _, script = fake_completion
        script["m1"] = lambda: stream_of(
            delta_chunk(content="Hel"),
            delta_chunk(content="lo"),
            delta_chunk(tool_calls=[NS(index=0, id="c1", function=NS(name="echo", arguments='{"te'))]),
            delta_chunk(tool_calls=[NS(index=0, id=None, function=NS(name=None, arguments='xt": "x"}'))]),
            delta_chunk(finish_reason="tool_calls"),
        )

        provider = LiteLLMProvider(default_model="m1")
        chunks = [c async for c in provider.chat_stream([{"role": "user", "content": "hi"}])]

        assert [c.content for c in chunks[:2]] == ["Hel", "lo"]
        assert chunks[2].is_tool_call
        assert chunks[2].tool_call_name == "echo"
        assert chunks[2].tool_call_arguments == '{"text": "x"}'
        assert chunks[3].is_final and chunks[3].finish_reason == "tool_calls"

    @pytest.mark.asyncio
    async def test_failover_before_output(self, fake_completion):
        """Test that a model failing before any output is replaced."""
        _, script = fake_completion
        script["primary"] = RuntimeError("down")
        script["backup"] = lambda: stream_of(delta_chunk(content="ok"), delta_chunk(finish_reason="stop"))

        provider = LiteLLMProvider(default_model="primary", fallback_models=["backup"])
        chunks = [c async for c in provider.chat_stream([{"role": "user", "content": "hi"}])]

        assert chunks[0].content == "ok"
        assert chunks[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_no_failover_after_output(self, fake_completion):
        """Test that a stream broken mid-reply ends with an error chunk."""
        _, script = fake_completion

        async def broken():
            yield delta_chunk(content="partial")
            raise RuntimeError("connection reset")

        script["primary"] = broken
        script["backup"] = lambda: stream_of(delta_chunk(content="again"), delta_chunk(finish_reason="stop"))

        provider = LiteLLMProvider(default_model="primary", fallback_models=["backup"])
        chunks = [c async for c in provider.chat_stream([{"role": "user", "content": "hi"}])]

        assert [c.content for c in chunks] == ["partial", "Error: All models failed. Last error: connection reset"]
        assert chunks[-1].finish_reason == "error"


class TestParseToolArguments:
    """Tests for parse_tool_arguments."""

    def test_variants(self):
        """Test dicts, JSON strings, empty values and bad JSON."""
        assert parse_tool_arguments({"a": 1}) == {"a": 1}
        assert parse_tool_arguments('{"a": 1}') == {"a": 1}
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments(None) == {}
        assert parse_tool_arguments("not json") == {"raw": "not json"}
        assert parse_tool_arguments("[1, 2]") == {"value": [1, 2]}
