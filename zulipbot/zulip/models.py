"""Typed views over Zulip REST payloads."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ZulipProfile:
    """The authenticated bot's own user record."""
    user_id: int
    email: str = ""
    full_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZulipProfile":
        return cls(
            user_id=int(data.get("user_id", 0)),
            email=data.get("email", ""),
            full_name=data.get("full_name", ""),
        )


@dataclass
class QueueRegistration:
    """Result of registering an event queue."""
    queue_id: str
    last_event_id: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueRegistration":
        return cls(
            queue_id=str(data["queue_id"]),
            last_event_id=int(data.get("last_event_id", -1)),
        )


@dataclass
class ZulipMessage:
    """A message object as delivered inside a `message` event."""
    id: int
    sender_id: int
    sender_email: str
    sender_full_name: str
    type: str  # "stream" or "private"
    content: str
    timestamp: int
    stream_id: int | None = None
    display_recipient: str | list[dict[str, Any]] = ""
    subject: str = ""

    @property
    def is_stream(self) -> bool:
        return self.type == "stream"

    @property
    def stream_name(self) -> str:
        """Stream name for stream messages; empty for private ones."""
        if self.is_stream and isinstance(self.display_recipient, str):
            return self.display_recipient
        return ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZulipMessage":
        stream_id = data.get("stream_id")
        return cls(
            id=int(data["id"]),
            sender_id=int(data.get("sender_id", 0)),
            sender_email=data.get("sender_email", ""),
            sender_full_name=data.get("sender_full_name", ""),
            type=data.get("type", "private"),
            content=data.get("content", ""),
            timestamp=int(data.get("timestamp", 0)),
            stream_id=int(stream_id) if stream_id is not None else None,
            display_recipient=data.get("display_recipient", ""),
            subject=data.get("subject") or data.get("topic") or "",
        )


@dataclass
class ZulipEvent:
    """One entry from an /events long-poll batch."""
    type: str
    id: int
    message: ZulipMessage | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZulipEvent":
        message = data.get("message")
        return cls(
            type=data.get("type", ""),
            id=int(data.get("id", -1)),
            message=ZulipMessage.from_dict(message) if isinstance(message, dict) else None,
            raw=data,
        )


@dataclass
class ZulipStream:
    """A stream (channel) as returned by /streams."""
    stream_id: int
    name: str
    description: str = ""
    invite_only: bool = False
    is_web_public: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZulipStream":
        return cls(
            stream_id=int(data.get("stream_id", 0)),
            name=data.get("name", ""),
            description=data.get("description", ""),
            invite_only=bool(data.get("invite_only", False)),
            is_web_public=bool(data.get("is_web_public", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stream_id": self.stream_id,
            "name": self.name,
            "description": self.description,
            "invite_only": self.invite_only,
        }
