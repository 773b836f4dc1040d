"""
Inbound message pipeline for one Zulip account.

Order of checks for each message:
1. Drop the bot's own messages
2. Drop duplicates (dedup cache)
3. Evaluate DM / stream policy (may trigger a pairing reply)
4. Strip mentions; drop empty bodies
5. Resolve the conversation route (DMs persist their last route)
6. Generate replies and dispatch them in order with a typing indicator
"""

import re

from loguru import logger

from zulipbot.agent.reply import ReplyGenerator
from zulipbot.auto_reply.context import build_inbound_context
from zulipbot.auto_reply.dedup import DedupCache, dedup_key, get_dedup_cache
from zulipbot.auto_reply.dispatch import DispatchConfig, ReplyDispatcher
from zulipbot.auto_reply.mentions import (
    matches_mention_patterns,
    strip_mentions,
    was_bot_mentioned,
)
from zulipbot.auto_reply.queue import DeliveryQueues
from zulipbot.auto_reply.typing_indicator import TypingIndicator, TypingTarget
from zulipbot.bus.events import InboundMessage
from zulipbot.channels.status import StatusSink, now_ms
from zulipbot.routing.router import RouteResolver
from zulipbot.security.pairing import PairingStore, build_pairing_reply
from zulipbot.security.policy import (
    PolicyDecision,
    PolicyInput,
    SenderIdentity,
    evaluate_inbound,
    normalize_allow_list,
)
from zulipbot.zulip.accounts import ResolvedZulipAccount
from zulipbot.zulip.client import ZulipClient
from zulipbot.zulip.models import ZulipProfile
from zulipbot.zulip.send import ZulipSender
from zulipbot.zulip.targets import format_dm_target


class ZulipMessageHandler:
    """Runs every inbound message of one account through the reply pipeline."""

    def __init__(
        self,
        account: ResolvedZulipAccount,
        profile: ZulipProfile,
        client: ZulipClient,
        sender: ZulipSender,
        resolver: RouteResolver,
        generator: ReplyGenerator,
        pairing_store: PairingStore | None = None,
        dedup: DedupCache | None = None,
        mention_regexes: list[re.Pattern[str]] | None = None,
        queues: DeliveryQueues | None = None,
        status_sink: StatusSink | None = None,
    ):
        self.account = account
        self.profile = profile
        self.client = client
        self.sender = sender
        self.resolver = resolver
        self.generator = generator
        self.pairing_store = pairing_store
        self.dedup = dedup if dedup is not None else get_dedup_cache()
        self.mention_regexes = mention_regexes or []
        self.queues = queues
        self.status_sink = status_sink

    @property
    def account_id(self) -> str:
        return self.account.account_id

    @property
    def bot_name(self) -> str:
        return self.profile.full_name

    def effective_allow_from(self) -> frozenset[str]:
        """Configured allow-list plus senders approved through pairing."""
        entries: list[str | int] = list(self.account.config.allow_from)
        if self.pairing_store is not None:
            entries.extend(self.pairing_store.read_allow_from())
        return normalize_allow_list(entries)

    async def handle(self, message: InboundMessage) -> None:
        if message.sender_id == str(self.profile.user_id):
            return

        if self.dedup.seen(dedup_key(self.account_id, message.id)):
            logger.debug(f"zulip[{self.account_id}] duplicate message {message.id} dropped")
            return

        raw_text = message.content.strip()
        sender = SenderIdentity(
            id=message.sender_id,
            email=message.sender_email,
            name=message.sender_name,
        )
        was_mentioned = not message.is_direct and (
            was_bot_mentioned(raw_text, self.bot_name)
            or matches_mention_patterns(raw_text, self.mention_regexes)
        )

        result = evaluate_inbound(PolicyInput(
            kind=message.kind,
            sender=sender,
            allow_from=self.effective_allow_from(),
            dm_policy=self.account.config.dm_policy,
            stream_name=message.stream_name,
            was_mentioned=was_mentioned,
            auto_reply_streams=self.account.config.auto_reply_streams,
        ))

        if result.decision == PolicyDecision.PAIRING:
            await self._request_pairing(message)
            return
        if result.decision == PolicyDecision.DROP:
            logger.debug(
                f"zulip[{self.account_id}] message {message.id} dropped ({result.reason})"
            )
            return

        body = strip_mentions(
            raw_text,
            self.bot_name,
            () if message.is_direct else self.mention_regexes,
        )
        if not body:
            logger.debug(f"zulip[{self.account_id}] message {message.id} empty after stripping")
            return

        self._report({"last_inbound_at": now_ms()})

        route = self.resolver.resolve(message, self.account_id)
        ctx = build_inbound_context(message, route, body, result.command_authorized)
        self.resolver.record_last_route(route)

        config = self.account.config
        dispatcher = ReplyDispatcher(
            to=route.to,
            sender=self.sender,
            config=DispatchConfig(
                text_limit=self.account.text_chunk_limit,
                chunk_mode=config.chunk_mode,
                table_mode=config.markdown_tables,
            ),
            typing=TypingIndicator(
                self.client,
                TypingTarget.for_message(message),
                keepalive_seconds=config.typing_keepalive_seconds,
            ),
            queues=self.queues,
            account_id=self.account_id,
        )

        dispatcher.start()
        try:
            async for payload in self.generator.generate(ctx):
                await dispatcher.deliver(payload)
        except Exception as e:
            logger.error(f"zulip[{self.account_id}] reply failed for message {message.id}: {e}")
        finally:
            await dispatcher.mark_idle()

    async def _request_pairing(self, message: InboundMessage) -> None:
        if self.pairing_store is None:
            return
        code, created = self.pairing_store.upsert_request(
            message.sender_id,
            {"name": message.sender_name, "email": message.sender_email},
        )
        if not created:
            return
        try:
            await self.sender.send(
                format_dm_target(message.sender_id),
                build_pairing_reply(message.sender_id, code),
            )
        except Exception as e:
            logger.warning(f"zulip[{self.account_id}] pairing reply to {message.sender_id} failed: {e}")

    def _report(self, patch: dict) -> None:
        if self.status_sink:
            self.status_sink(patch)
