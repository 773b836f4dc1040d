"""Typing indicator with keepalive while a reply is being generated."""

import asyncio
import contextlib
from dataclasses import dataclass, field

from loguru import logger

from zulipbot.bus.events import InboundMessage
from zulipbot.zulip.client import ZulipClient


DEFAULT_KEEPALIVE_SECONDS = 10.0


@dataclass
class TypingTarget:
    """Either DM recipients or a stream topic."""
    user_ids: list[int] = field(default_factory=list)
    stream_id: int | None = None
    topic: str | None = None

    @property
    def is_stream(self) -> bool:
        return self.stream_id is not None

    @property
    def is_valid(self) -> bool:
        return self.is_stream or bool(self.user_ids)

    @classmethod
    def for_message(cls, message: InboundMessage) -> "TypingTarget":
        if message.is_direct:
            return cls(user_ids=[int(message.sender_id)] if message.sender_id.isdigit() else [])
        return cls(stream_id=message.stream_id, topic=message.topic)

    def describe(self) -> str:
        if self.is_stream:
            return f"stream {self.stream_id} > {self.topic}"
        return f"dm {self.user_ids}"


class TypingIndicator:
    """
    Shows "typing..." in a conversation until stopped.

    Zulip expires typing notifications after ~15s, so `start` is
    re-sent every keepalive interval. Failures are logged, never raised.
    """

    def __init__(
        self,
        client: ZulipClient,
        target: TypingTarget,
        keepalive_seconds: float = DEFAULT_KEEPALIVE_SECONDS,
    ):
        self.client = client
        self.target = target
        self.keepalive_seconds = keepalive_seconds
        self._task: asyncio.Task | None = None
        self._started = False

    def start(self) -> None:
        """Begin the keepalive loop without waiting for the first send."""
        if not self.target.is_valid or (self._task and not self._task.done()):
            return
        self._task = asyncio.create_task(self._keepalive())

    async def _keepalive(self) -> None:
        while True:
            if await self._send("start"):
                self._started = True
            await asyncio.sleep(self.keepalive_seconds)

    async def stop(self) -> None:
        """Cancel the keepalive loop and clear the indicator."""
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._started:
            self._started = False
            await self._send("stop")

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _send(self, op: str) -> bool:
        try:
            await self.client.send_typing(
                op,
                to=self.target.user_ids,
                stream_id=self.target.stream_id,
                topic=self.target.topic,
            )
            return True
        except Exception as e:
            logger.debug(f"zulip typing {op} failed for {self.target.describe()}: {e}")
            return False
