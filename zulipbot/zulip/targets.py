"""
Destination addresses for outbound Zulip messages.

Grammar:
- stream:<name>:<topic>  stream message (topic defaults to "(no topic)")
- dm:<userId> / user:<userId>  direct message
- <name>  bare stream name, default topic
"""

import json
from dataclasses import dataclass
from typing import Literal


DEFAULT_TOPIC = "(no topic)"


@dataclass(frozen=True)
class ZulipTarget:
    """A parsed destination ready for the /messages endpoint."""
    type: Literal["stream", "direct"]
    to: str  # Stream name, or JSON list of user ids
    topic: str | None = None

    @property
    def user_ids(self) -> list[int]:
        """Numeric recipients of a direct target (empty for streams)."""
        if self.type != "direct":
            return []
        return [r for r in json.loads(self.to) if isinstance(r, int)]


def parse_target(raw: str) -> ZulipTarget:
    """
    Parse a destination address.

    Raises:
        ValueError: The address is empty.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        raise ValueError("Zulip target is required")

    lowered = trimmed.lower()
    if lowered.startswith("stream:"):
        rest = trimmed[len("stream:"):]
        name, sep, topic = rest.partition(":")
        if not sep:
            return ZulipTarget(type="stream", to=rest, topic=DEFAULT_TOPIC)
        return ZulipTarget(type="stream", to=name, topic=topic or DEFAULT_TOPIC)

    if lowered.startswith("dm:") or lowered.startswith("user:"):
        user_id = trimmed.split(":", 1)[1].strip()
        recipient: int | str = int(user_id) if user_id.isdigit() else user_id
        return ZulipTarget(type="direct", to=json.dumps([recipient]))

    return ZulipTarget(type="stream", to=trimmed, topic=DEFAULT_TOPIC)


def format_dm_target(user_id: str | int) -> str:
    return f"dm:{user_id}"


def format_stream_target(stream_name: str, topic: str | None) -> str:
    return f"stream:{stream_name}:{topic or DEFAULT_TOPIC}"
