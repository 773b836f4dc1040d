"""Inbound context handed to the reply generator."""

from dataclasses import dataclass
from datetime import datetime, timezone

from zulipbot.bus.events import InboundMessage
from zulipbot.routing.router import ConversationRoute


@dataclass
class InboundContext:
    """Everything the agent gets to know about one inbound message."""
    body: str  # Envelope with sender and timestamp
    body_for_agent: str
    raw_body: str
    command_body: str
    from_: str
    to: str
    session_key: str
    main_session_key: str
    account_id: str
    agent_id: str
    chat_type: str  # "direct" or "channel"
    conversation_label: str
    sender_name: str
    sender_id: str
    sender_email: str
    message_sid: str
    timestamp_ms: int
    command_authorized: bool
    originating_to: str
    group_subject: str | None = None
    was_mentioned: bool | None = None
    provider: str = "zulip"

    @property
    def content_key(self) -> str:
        return f"zulip:message:{self.message_sid}"


def conversation_label(message: InboundMessage) -> str:
    if message.is_direct:
        return f"{message.sender_name} ({message.sender_email})"
    return f"{message.sender_name} in #{message.stream_name or 'unknown'} > {message.topic}"


def format_inbound_envelope(label: str, timestamp: int, text: str, message_id: int) -> str:
    """Wrap a message body with its origin and time for the agent transcript."""
    when = datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(timespec="seconds")
    return f"[Zulip {label} {when}] {text}\n[zulip message id: {message_id}]"


def build_inbound_context(
    message: InboundMessage,
    route: ConversationRoute,
    body: str,
    command_authorized: bool,
) -> InboundContext:
    """
    Build the context for a message that passed policy.

    Args:
        message: The inbound message.
        route: Its resolved conversation route.
        body: Message text with bot mentions stripped.
        command_authorized: Whether the sender may run commands.
    """
    label = conversation_label(message)
    if message.is_direct:
        from_ = f"zulip:{message.sender_id}"
        group_subject = None
        was_mentioned = None
    else:
        from_ = f"zulip:channel:{message.stream_name or 'unknown'}"
        group_subject = f"#{message.stream_name} > {message.topic}"
        was_mentioned = True

    return InboundContext(
        body=format_inbound_envelope(label, message.timestamp, body, message.id),
        body_for_agent=body,
        raw_body=body,
        command_body=body,
        from_=from_,
        to=route.to,
        session_key=route.session_key,
        main_session_key=route.main_session_key,
        account_id=route.account_id,
        agent_id=route.agent_id,
        chat_type=route.chat_type,
        conversation_label=label,
        group_subject=group_subject,
        sender_name=message.sender_name,
        sender_id=message.sender_id,
        sender_email=message.sender_email,
        message_sid=str(message.id),
        timestamp_ms=message.timestamp * 1000,
        was_mentioned=was_mentioned,
        command_authorized=command_authorized,
        originating_to=route.to,
    )
