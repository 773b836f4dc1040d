"""Event types flowing through the bridge."""

from dataclasses import dataclass, field
from enum import Enum

from zulipbot.zulip.models import ZulipMessage
from zulipbot.zulip.targets import DEFAULT_TOPIC


class ConversationKind(str, Enum):
    """Where a message was posted."""
    DIRECT = "direct"
    BROADCAST = "broadcast"


@dataclass(frozen=True)
class InboundMessage:
    """A message received from Zulip, normalized for the pipeline."""
    id: int
    sender_id: str
    sender_name: str
    sender_email: str
    kind: ConversationKind
    content: str
    timestamp: int  # Seconds since epoch
    stream_name: str = ""
    stream_id: int | None = None
    topic: str = ""

    @property
    def is_direct(self) -> bool:
        return self.kind == ConversationKind.DIRECT

    @classmethod
    def from_zulip(cls, message: ZulipMessage) -> "InboundMessage":
        if message.is_stream:
            return cls(
                id=message.id,
                sender_id=str(message.sender_id),
                sender_name=message.sender_full_name,
                sender_email=message.sender_email,
                kind=ConversationKind.BROADCAST,
                content=message.content,
                timestamp=message.timestamp,
                stream_name=message.stream_name,
                stream_id=message.stream_id,
                topic=message.subject or DEFAULT_TOPIC,
            )
        return cls(
            id=message.id,
            sender_id=str(message.sender_id),
            sender_name=message.sender_full_name,
            sender_email=message.sender_email,
            kind=ConversationKind.DIRECT,
            content=message.content,
            timestamp=message.timestamp,
        )


@dataclass
class ReplyPayload:
    """One reply produced by the agent for a conversation."""
    text: str = ""
    media_urls: list[str] = field(default_factory=list)
    is_error: bool = False
