"""
Pytest configuration and shared fixtures for ZulipBot tests.
"""

import pytest
import sys
from pathlib import Path

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from zulipbot.bus.events import ConversationKind, InboundMessage, ReplyPayload
from zulipbot.config.schema import (
    ChannelsConfig,
    Config,
    PairingConfig,
    SessionConfig,
    ZulipConfig,
)


class FakeSender:
    """Records sends instead of talking to a server."""

    def __init__(self, fail_on: set[str] | None = None):
        self.sent: list[tuple[str, str, str | None]] = []
        self.fail_on = fail_on or set()

    async def send(self, to: str, text: str, media_url: str | None = None) -> str:
        if text in self.fail_on:
            raise RuntimeError(f"send failed for {text!r}")
        self.sent.append((to, text, media_url))
        return str(len(self.sent))

    @property
    def texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]


class FakeGenerator:
    """Reply generator that echoes the body it was given."""

    def __init__(self, error: Exception | None = None):
        self.contexts = []
        self.error = error

    async def generate(self, ctx):
        self.contexts.append(ctx)
        if self.error:
            raise self.error
        yield ReplyPayload(text=f"reply to: {ctx.body_for_agent}")


def make_dm(content: str = "hello", sender_id: str = "42", message_id: int = 100) -> InboundMessage:
    return InboundMessage(
        id=message_id,
        sender_id=sender_id,
        sender_name="Alice Example",
        sender_email="alice@example.com",
        kind=ConversationKind.DIRECT,
        content=content,
        timestamp=1700000000,
    )


def make_stream_message(
    content: str = "hello",
    stream: str = "general",
    topic: str = "lunch",
    sender_id: str = "42",
    message_id: int = 200,
) -> InboundMessage:
    return InboundMessage(
        id=message_id,
        sender_id=sender_id,
        sender_name="Alice Example",
        sender_email="alice@example.com",
        kind=ConversationKind.BROADCAST,
        content=content,
        timestamp=1700000000,
        stream_name=stream,
        stream_id=7,
        topic=topic,
    )


@pytest.fixture
def make_config(tmp_path):
    """Build a Config with working credentials and stores under tmp_path."""
    def _make(**zulip_overrides) -> Config:
        zulip = {
            "server_url": "https://chat.example.com",
            "bot_email": "helper-bot@chat.example.com",
            "api_key": "secret",
            **zulip_overrides,
        }
        return Config(
            channels=ChannelsConfig(zulip=ZulipConfig(**zulip)),
            session=SessionConfig(store=str(tmp_path / "sessions.json")),
            pairing=PairingConfig(store=str(tmp_path / "pairing")),
        )
    return _make


@pytest.fixture
def config_dir(tmp_path):
    """Create a temporary config directory."""
    config = tmp_path / "config"
    config.mkdir()
    return config
