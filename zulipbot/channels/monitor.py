"""
Zulip event loop.

Keeps an event queue registered and long-polls it, handing each message
event to a handler. Failed registrations and polls reconnect with
exponential backoff (1s doubling to 30s, reset after a successful
registration).

States: REGISTERING -> POLLING -> BACKOFF -> REGISTERING ... -> STOPPED
"""

import asyncio
import contextlib
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

from loguru import logger

from zulipbot.bus.events import InboundMessage
from zulipbot.channels.status import StatusSink, now_ms
from zulipbot.zulip.client import PollAborted
from zulipbot.zulip.models import QueueRegistration, ZulipEvent


class LoopState(str, Enum):
    """Event loop states."""
    REGISTERING = "registering"
    POLLING = "polling"
    BACKOFF = "backoff"
    STOPPED = "stopped"


@dataclass
class ConnectionState:
    """The registered queue and the highest event id seen on it."""
    queue_id: str
    last_event_id: int

    def advance(self, event_id: int) -> None:
        if event_id > self.last_event_id:
            self.last_event_id = event_id


class ExponentialBackoff:
    """Reconnect delays: floor, doubling, capped at ceiling."""

    def __init__(self, floor: float = 1.0, ceiling: float = 30.0, factor: float = 2.0):
        self.floor = floor
        self.ceiling = ceiling
        self.factor = factor
        self._current = floor

    def next_delay(self) -> float:
        """Return the delay to wait now and grow the next one."""
        delay = self._current
        self._current = min(self._current * self.factor, self.ceiling)
        return delay

    def reset(self) -> None:
        self._current = self.floor

    @property
    def current(self) -> float:
        return self._current


class EventTransport(Protocol):
    """The part of the Zulip client the loop depends on."""

    async def register_event_queue(
        self, abort: asyncio.Event | None = None
    ) -> QueueRegistration: ...

    async def poll_events(
        self,
        queue_id: str,
        last_event_id: int,
        abort: asyncio.Event | None = None,
    ) -> list[ZulipEvent]: ...


class InboundHandler(Protocol):
    async def handle(self, message: InboundMessage) -> None: ...


Sleep = Callable[[float, asyncio.Event], Awaitable[None]]


async def abortable_sleep(delay: float, abort: asyncio.Event) -> None:
    """Sleep for `delay` seconds, returning early if abort is set."""
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(abort.wait(), timeout=delay)


class ZulipMonitor:
    """
    Long-poll loop for one account.

    Events are handled strictly in order; the next poll is issued only
    after the whole batch has been handled.
    """

    def __init__(
        self,
        account_id: str,
        transport: EventTransport,
        handler: InboundHandler,
        status_sink: StatusSink | None = None,
        backoff: ExponentialBackoff | None = None,
        sleep: Sleep = abortable_sleep,
    ):
        self.account_id = account_id
        self.transport = transport
        self.handler = handler
        self.status_sink = status_sink
        self.backoff = backoff or ExponentialBackoff()
        self._sleep = sleep

        self.state = LoopState.REGISTERING
        self.connection: ConnectionState | None = None

    def _report(self, patch: dict) -> None:
        if self.status_sink:
            self.status_sink(patch)

    async def run(self, abort: asyncio.Event) -> None:
        """Run until the abort event is set."""
        self.state = LoopState.REGISTERING
        while not abort.is_set():
            if self.state == LoopState.REGISTERING:
                await self._register(abort)
            elif self.state == LoopState.POLLING:
                await self._poll(abort)
            elif self.state == LoopState.BACKOFF:
                delay = self.backoff.next_delay()
                logger.debug(f"zulip[{self.account_id}] reconnecting in {delay:.0f}s")
                await self._sleep(delay, abort)
                self.state = LoopState.REGISTERING

        self.state = LoopState.STOPPED
        self.connection = None
        logger.info(f"zulip[{self.account_id}] event loop stopped")

    async def _register(self, abort: asyncio.Event) -> None:
        try:
            registration = await self.transport.register_event_queue(abort=abort)
        except PollAborted:
            return
        except Exception as e:
            if abort.is_set():
                return
            self._fail("register", e)
            return

        self.connection = ConnectionState(
            queue_id=registration.queue_id,
            last_event_id=registration.last_event_id,
        )
        self.backoff.reset()
        self._report({"connected": True, "last_connected_at": now_ms(), "last_error": None})
        logger.info(f"zulip[{self.account_id}] event queue {registration.queue_id} registered")
        self.state = LoopState.POLLING

    async def _poll(self, abort: asyncio.Event) -> None:
        conn = self.connection
        try:
            events = await self.transport.poll_events(
                conn.queue_id, conn.last_event_id, abort=abort
            )
        except PollAborted:
            return
        except Exception as e:
            if abort.is_set():
                return
            self._fail("poll", e)
            return

        for event in events:
            conn.advance(event.id)
            if event.type != "message" or event.message is None:
                continue
            try:
                await self.handler.handle(InboundMessage.from_zulip(event.message))
            except Exception:
                logger.exception(
                    f"zulip[{self.account_id}] handler error for message {event.message.id}"
                )

    def _fail(self, stage: str, error: Exception) -> None:
        err = str(error) or error.__class__.__name__
        logger.error(f"zulip[{self.account_id}] {stage} error: {err}")
        self._report({
            "connected": False,
            "last_error": err,
            "last_disconnect": {"at": now_ms(), "error": err},
        })
        self.connection = None
        self.state = LoopState.BACKOFF
