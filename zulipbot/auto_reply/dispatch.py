"""
Reply dispatcher for ZulipBot auto-reply.

Delivers agent replies to one conversation with:
- Markdown table conversion
- Chunking to the account's text limit
- Strict per-destination ordering
- Typing indicator while the agent works
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from zulipbot.auto_reply.chunking import ChunkMode, TableMode, chunk_text, convert_markdown_tables
from zulipbot.auto_reply.queue import DeliveryQueues, get_delivery_queues
from zulipbot.auto_reply.typing_indicator import TypingIndicator
from zulipbot.bus.events import ReplyPayload
from zulipbot.zulip.send import ZulipSender


DEFAULT_TEXT_LIMIT = 10000


@dataclass
class DispatchConfig:
    """Configuration for the dispatcher."""
    text_limit: int = DEFAULT_TEXT_LIMIT
    chunk_mode: ChunkMode = "length"
    table_mode: TableMode = "off"


class ReplyDispatcher:
    """
    Sends the replies for one inbound message back to its conversation.

    Flow:
    1. start() shows the typing indicator
    2. deliver() is called once per reply payload
    3. mark_idle() clears the typing indicator
    """

    def __init__(
        self,
        to: str,
        sender: ZulipSender,
        config: DispatchConfig | None = None,
        typing: TypingIndicator | None = None,
        queues: DeliveryQueues | None = None,
        account_id: str = "",
    ):
        self.to = to
        self.account_id = account_id
        self.sender = sender
        self.config = config or DispatchConfig()
        self.typing = typing
        self.queues = queues if queues is not None else get_delivery_queues()

        # Stats
        self._delivered_count = 0
        self._failed_count = 0

    def start(self) -> None:
        """Start the typing indicator (fire-and-forget)."""
        if self.typing:
            self.typing.start()

    async def deliver(self, payload: ReplyPayload) -> None:
        """
        Deliver one reply payload: text chunks in order, then media.

        A chunk that fails to send is logged and skipped; later chunks are
        still sent.
        """
        text = convert_markdown_tables(payload.text or "", self.config.table_mode)
        chunks = chunk_text(text, self.config.text_limit, self.config.chunk_mode) if text else []

        async def send_all() -> None:
            for chunk in chunks:
                if not chunk.strip():
                    continue
                await self._send(chunk)
            for media_url in payload.media_urls:
                await self._send("", media_url)

        await self.queues.run(self.queue_key, send_all)

    async def _send(self, text: str, media_url: str | None = None) -> None:
        try:
            await self.sender.send(self.to, text, media_url=media_url)
            self._delivered_count += 1
        except Exception as e:
            self._failed_count += 1
            logger.error(f"zulip reply to {self.to} failed: {e}")

    async def mark_idle(self) -> None:
        """Stop the typing indicator once the agent is done."""
        if self.typing:
            await self.typing.stop()

    @property
    def queue_key(self) -> str:
        """Delivery queue key: the destination, scoped to the account when one is set."""
        return f"{self.account_id}:{self.to}" if self.account_id else self.to

    @property
    def delivered(self) -> int:
        return self._delivered_count

    @property
    def failed(self) -> int:
        return self._failed_count

    def get_stats(self) -> dict[str, Any]:
        """Get dispatcher statistics."""
        return {
            "to": self.to,
            "delivered_count": self._delivered_count,
            "failed_count": self._failed_count,
        }
