"""
Tests for the agent tools and the tool registry.
"""

from unittest.mock import AsyncMock

import pytest

from zulipbot.agent.tools.base import Tool, ToolRegistry
from zulipbot.agent.tools.zulip import ZulipSendTool, ZulipStreamsTool, create_zulip_tools
from zulipbot.zulip.models import ZulipStream


class BrokenTool(Tool):
    name = "broken"
    description = "Always fails"
    parameters = {"type": "object", "properties": {}}

    async def execute(self, **kwargs):
        raise RuntimeError("boom")


@pytest.fixture
def client():
    return AsyncMock()


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_definitions(self, client):
        """Test that registered tools are exposed as function schemas."""
        registry = ToolRegistry()
        for tool in create_zulip_tools(client):
            registry.register(tool)

        names = [d["function"]["name"] for d in registry.get_definitions()]
        assert names == ["zulip_streams", "zulip_send"]
        assert len(registry) == 2
        assert "zulip_send" in registry
        assert registry.get_definitions()[1]["function"]["parameters"]["required"] == ["content"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test that an unknown tool name returns an error string."""
        result = await ToolRegistry().execute("nope", {})
        assert result == "Error: Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_tool_exception_is_returned(self):
        """Test that a failing tool reports its error instead of raising."""
        registry = ToolRegistry()
        registry.register(BrokenTool())

        result = await registry.execute("broken", {})
        assert result == "Error executing broken: boom"


class TestZulipStreamsTool:
    """Tests for the zulip_streams tool."""

    @pytest.mark.asyncio
    async def test_list_all(self, client):
        """Test listing all streams."""
        client.list_streams.return_value = [
            ZulipStream(stream_id=1, name="general", description="Everything"),
            ZulipStream(stream_id=2, name="ops", invite_only=True),
        ]

        result = await ZulipStreamsTool(client).execute(action="list_all")

        assert result == (
            "- **general** (id:1): Everything\n"
            "- **ops** (id:2): (no description) (private)"
        )

    @pytest.mark.asyncio
    async def test_list_subscribed_empty(self, client):
        """Test the empty subscription message."""
        client.list_subscriptions.return_value = []
        result = await ZulipStreamsTool(client).execute(action="list_subscribed")
        assert result == "Not subscribed to any streams."

    @pytest.mark.asyncio
    async def test_create(self, client):
        """Test creating a stream."""
        client.subscribe.return_value = {"subscribed": {"helper-bot": ["deploys"]}, "already_subscribed": {}}

        result = await ZulipStreamsTool(client).execute(
            action="create", name="deploys", description="Deploy log", is_private=True
        )

        assert result == "Created/joined stream **deploys**"
        client.subscribe.assert_awaited_once_with("deploys", description="Deploy log", is_private=True)

    @pytest.mark.asyncio
    async def test_join_already_subscribed(self, client):
        """Test joining a stream the bot is already in."""
        client.subscribe.return_value = {"subscribed": {}, "already_subscribed": {"helper-bot": ["general"]}}
        result = await ZulipStreamsTool(client).execute(action="join", name="general")
        assert result == "Already subscribed to **general**"

    @pytest.mark.asyncio
    async def test_create_requires_name(self, client):
        """Test that create without a name is rejected."""
        result = await ZulipStreamsTool(client).execute(action="create")
        assert result == "Error: stream name is required."
        client.subscribe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_leave(self, client):
        """Test leaving a stream."""
        result = await ZulipStreamsTool(client).execute(action="leave", name="general")
        assert result == "Left stream **general**"
        client.unsubscribe.assert_awaited_once_with("general")

    @pytest.mark.asyncio
    async def test_stream_id_required(self, client):
        """Test that id-based actions need a stream_id."""
        tool = ZulipStreamsTool(client)
        for action in ("update", "delete", "topics", "members"):
            assert await tool.execute(action=action) == f"Error: stream_id is required for {action}."

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client):
        """Test updating and deleting by id."""
        tool = ZulipStreamsTool(client)

        assert await tool.execute(action="update", stream_id=5, new_name="ops") == "Stream 5 updated"
        client.update_stream.assert_awaited_once_with(5, description=None, new_name="ops", is_private=None)

        assert await tool.execute(action="delete", stream_id=5) == "Stream 5 deleted"
        client.delete_stream.assert_awaited_once_with(5)

    @pytest.mark.asyncio
    async def test_topics_and_members(self, client):
        """Test listing topics and members."""
        client.get_stream_topics.return_value = [{"name": "lunch"}, {"name": "deploys"}]
        client.get_stream_members.return_value = [42, 43]
        tool = ZulipStreamsTool(client)

        assert await tool.execute(action="topics", stream_id=7) == "- lunch\n- deploys"
        assert await tool.execute(action="members", stream_id=7) == "Stream has 2 members: 42, 43"

    @pytest.mark.asyncio
    async def test_unknown_action(self, client):
        """Test an unsupported action."""
        assert await ZulipStreamsTool(client).execute(action="archive") == "Unknown action: archive"


class TestZulipSendTool:
    """Tests for the zulip_send tool."""

    @pytest.mark.asyncio
    async def test_send_to_stream(self, client):
        """Test posting to a stream topic."""
        client.send_message.return_value = 77

        result = await ZulipSendTool(client).execute(stream_name="general", topic="lunch", content="Pizza?")

        assert result == "Sent to #general > lunch (id:77)"
        client.send_message.assert_awaited_once_with(
            type="stream", to="general", content="Pizza?", topic="lunch"
        )

    @pytest.mark.asyncio
    async def test_stream_without_topic(self, client):
        """Test that a missing topic falls back to the default topic."""
        client.send_message.return_value = 1
        result = await ZulipSendTool(client).execute(stream_name="general", content="hi")
        assert result == "Sent to #general > (no topic) (id:1)"

    @pytest.mark.asyncio
    async def test_send_dm(self, client):
        """Test sending a direct message."""
        client.send_message.return_value = 9

        result = await ZulipSendTool(client).execute(user_id="42", content="hello")

        assert result == "Sent DM to user 42 (id:9)"
        client.send_message.assert_awaited_once_with(type="direct", to=[42], content="hello")

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, client):
        """Test rejected argument combinations."""
        tool = ZulipSendTool(client)

        assert await tool.execute(content="  ", user_id="42") == "Error: content is required."
        assert await tool.execute(content="hi", user_id="alice") == "Error: invalid user_id 'alice'."
        assert await tool.execute(content="hi") == "Error: provide either stream_name or user_id."
        client.send_message.assert_not_awaited()
