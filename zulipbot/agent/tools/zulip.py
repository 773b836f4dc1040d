"""
Zulip administration tools for the agent.

Provides:
- zulip_streams: list, create, join, leave, update and delete streams;
  list a stream's topics and members
- zulip_send: post to a stream topic or DM a user
"""

from typing import Any

from zulipbot.agent.tools.base import Tool
from zulipbot.zulip.client import ZulipClient
from zulipbot.zulip.targets import DEFAULT_TOPIC


class ZulipStreamsTool(Tool):
    """Stream management through the bot account."""

    name = "zulip_streams"
    description = (
        "List, create, join, leave, update, or delete Zulip streams/channels. "
        "Also list topics and members of a stream."
    )
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": [
                    "list_all", "list_subscribed", "create", "join", "leave",
                    "update", "delete", "topics", "members",
                ],
                "description": "Action to perform",
            },
            "name": {
                "type": "string",
                "description": "Stream name (for create/join/leave)",
            },
            "stream_id": {
                "type": "integer",
                "description": "Stream ID (for update/delete/topics/members)",
            },
            "description": {
                "type": "string",
                "description": "Stream description (for create/update)",
            },
            "is_private": {
                "type": "boolean",
                "description": "Whether the stream is private (for create/update)",
            },
            "new_name": {
                "type": "string",
                "description": "New name (for update)",
            },
        },
        "required": ["action"],
    }

    def __init__(self, client: ZulipClient):
        self.client = client

    async def execute(self, **kwargs: Any) -> str:
        action = kwargs.get("action", "")
        name = (kwargs.get("name") or "").strip()
        stream_id = kwargs.get("stream_id")

        if action == "list_all":
            streams = await self.client.list_streams()
            lines = [
                f"- **{s.name}** (id:{s.stream_id}): {s.description or '(no description)'}"
                f"{' (private)' if s.invite_only else ''}"
                for s in streams
            ]
            return "\n".join(lines) if lines else "No streams found."

        if action == "list_subscribed":
            streams = await self.client.list_subscriptions()
            lines = [
                f"- **{s.name}** (id:{s.stream_id}): {s.description or '(no description)'}"
                for s in streams
            ]
            return "\n".join(lines) if lines else "Not subscribed to any streams."

        if action in ("create", "join"):
            if not name:
                return "Error: stream name is required."
            result = await self.client.subscribe(
                name,
                description=kwargs.get("description"),
                is_private=bool(kwargs.get("is_private")),
            )
            if result["subscribed"]:
                return f"Created/joined stream **{name}**"
            if result["already_subscribed"]:
                return f"Already subscribed to **{name}**"
            return f"Subscribed to **{name}**"

        if action == "leave":
            if not name:
                return "Error: stream name is required."
            await self.client.unsubscribe(name)
            return f"Left stream **{name}**"

        if action in ("update", "delete", "topics", "members") and not stream_id:
            return f"Error: stream_id is required for {action}."

        if action == "update":
            await self.client.update_stream(
                int(stream_id),
                description=kwargs.get("description"),
                new_name=kwargs.get("new_name"),
                is_private=kwargs.get("is_private"),
            )
            return f"Stream {stream_id} updated"

        if action == "delete":
            await self.client.delete_stream(int(stream_id))
            return f"Stream {stream_id} deleted"

        if action == "topics":
            topics = await self.client.get_stream_topics(int(stream_id))
            lines = [f"- {t.get('name', '')}" for t in topics]
            return "\n".join(lines) if lines else "No topics found in this stream."

        if action == "members":
            members = await self.client.get_stream_members(int(stream_id))
            return f"Stream has {len(members)} members: {', '.join(str(m) for m in members)}"

        return f"Unknown action: {action}"


class ZulipSendTool(Tool):
    """Send a message anywhere the bot can post."""

    name = "zulip_send"
    description = (
        "Send a message to a Zulip stream (with topic) or DM. "
        "For streams: provide stream_name and topic. For DMs: provide user_id."
    )
    parameters = {
        "type": "object",
        "properties": {
            "stream_name": {"type": "string", "description": "Stream name to send to"},
            "topic": {"type": "string", "description": "Topic within the stream"},
            "user_id": {"type": "string", "description": "User ID for direct message"},
            "content": {"type": "string", "description": "Message content (Zulip markdown)"},
        },
        "required": ["content"],
    }

    def __init__(self, client: ZulipClient):
        self.client = client

    async def execute(self, **kwargs: Any) -> str:
        content = kwargs.get("content") or ""
        if not content.strip():
            return "Error: content is required."

        stream_name = kwargs.get("stream_name")
        user_id = str(kwargs.get("user_id") or "").strip()

        if stream_name:
            topic = kwargs.get("topic") or DEFAULT_TOPIC
            message_id = await self.client.send_message(
                type="stream", to=stream_name, content=content, topic=topic
            )
            return f"Sent to #{stream_name} > {topic} (id:{message_id})"

        if user_id:
            if not user_id.isdigit():
                return f"Error: invalid user_id {user_id!r}."
            message_id = await self.client.send_message(
                type="direct", to=[int(user_id)], content=content
            )
            return f"Sent DM to user {user_id} (id:{message_id})"

        return "Error: provide either stream_name or user_id."


def create_zulip_tools(client: ZulipClient) -> list[Tool]:
    """The agent tools backed by one account's client."""
    return [ZulipStreamsTool(client), ZulipSendTool(client)]
