"""
Zulip channel integration for ZulipBot.

Connects one bot account to a Zulip server with support for:
- Long-poll event queue with reconnect backoff
- DM policies (open / pairing / disabled) and sender allow lists
- Stream replies on mention or in auto-reply streams
- Ordered, chunked replies with a typing indicator
"""

import asyncio
from typing import Callable

from loguru import logger

from zulipbot.agent.reply import AgentReplyGenerator, ConversationHistory, ReplyGenerator
from zulipbot.agent.tools.base import ToolRegistry
from zulipbot.agent.tools.zulip import create_zulip_tools
from zulipbot.auto_reply.mentions import build_mention_regexes
from zulipbot.channels.base import BaseChannel
from zulipbot.channels.handler import ZulipMessageHandler
from zulipbot.channels.monitor import ZulipMonitor
from zulipbot.channels.status import AccountStatus, StatusTracker, now_ms
from zulipbot.config.schema import Config
from zulipbot.providers.base import LLMProvider
from zulipbot.routing.router import RouteResolver
from zulipbot.security.pairing import PairingStore
from zulipbot.session.store import SessionStore
from zulipbot.zulip.accounts import ResolvedZulipAccount, resolve_zulip_account
from zulipbot.zulip.client import ZulipClient
from zulipbot.zulip.send import ZulipSender

GeneratorFactory = Callable[[ResolvedZulipAccount, ZulipClient], ReplyGenerator]


class ZulipChannel(BaseChannel):
    """
    One Zulip bot account.

    `start` connects, then runs the event loop until `stop` is called.
    Replies come from the generator; when none is given, an LLM agent
    with the Zulip tools is built from the provider.
    """

    name = "zulip"

    def __init__(
        self,
        config: Config,
        account_id: str | None = None,
        provider: LLMProvider | None = None,
        generator_factory: GeneratorFactory | None = None,
        client_factory: Callable[[ResolvedZulipAccount], ZulipClient] | None = None,
        session_store: SessionStore | None = None,
        pairing_store: PairingStore | None = None,
    ):
        self.config = config
        self.account = resolve_zulip_account(config, account_id)
        super().__init__(self.account.account_id)

        self.provider = provider
        self._generator_factory = generator_factory
        self._client_factory = client_factory or _default_client
        self.session_store = session_store or SessionStore(config.session.store_path)
        self.pairing_store = pairing_store or PairingStore(
            config.pairing.store_path,
            channel=self.name,
            request_ttl_seconds=config.pairing.request_ttl_seconds,
        )

        self.status = StatusTracker(AccountStatus(
            account_id=self.account.account_id,
            name=self.account.name or None,
            enabled=self.account.enabled,
            configured=self.account.configured,
            server_url=self.account.server_url or None,
        ))

        self._client: ZulipClient | None = None
        self._sender: ZulipSender | None = None
        self._abort = asyncio.Event()

    async def start(self) -> None:
        """Connect and process inbound messages until stopped."""
        self.account.require_credentials()
        self._abort.clear()

        client = self._client_factory(self.account)
        self._client = client
        self._running = True
        self.status({"running": True, "last_start_at": now_ms(), "last_error": None})

        try:
            profile = await client.get_own_profile()
            logger.info(
                f"zulip[{self.account_id}] connected as {profile.full_name} "
                f"({profile.email}, id {profile.user_id})"
            )

            self._sender = ZulipSender(client, self.account_id, status_sink=self.status)
            handler = ZulipMessageHandler(
                account=self.account,
                profile=profile,
                client=client,
                sender=self._sender,
                resolver=RouteResolver(self.config, self.session_store, channel=self.name),
                generator=self._build_generator(client),
                pairing_store=self.pairing_store,
                mention_regexes=build_mention_regexes(self.config.messages.mention_patterns),
                status_sink=self.status,
            )
            monitor = ZulipMonitor(
                self.account_id,
                transport=client,
                handler=handler,
                status_sink=self.status,
            )
            await monitor.run(self._abort)
        except Exception as e:
            self.status({"last_error": str(e)})
            raise
        finally:
            self._running = False
            self._sender = None
            self._client = None
            self.status({"running": False, "connected": False, "last_stop_at": now_ms()})
            await client.aclose()

    async def stop(self) -> None:
        """Abort the event loop; an in-flight poll is cancelled."""
        logger.info(f"zulip[{self.account_id}] stopping")
        self._abort.set()

    async def send(self, to: str, text: str, media_url: str | None = None) -> str:
        """
        Send a message outside of a reply.

        Uses the running connection when there is one, otherwise a
        short-lived client.
        """
        if self._sender is not None:
            return await self._sender.send(to, text, media_url)

        self.account.require_credentials()
        async with self._client_factory(self.account) as client:
            sender = ZulipSender(client, self.account_id, status_sink=self.status)
            return await sender.send(to, text, media_url)

    async def send_to_session(self, session_key: str, text: str) -> str:
        """Send to the last conversation recorded for a session key."""
        delivery = self.session_store.get_last_route(session_key)
        if delivery is None:
            raise ValueError(f"No known route for session {session_key}")
        return await self.send(delivery.to, text)

    def _build_generator(self, client: ZulipClient) -> ReplyGenerator:
        if self._generator_factory is not None:
            return self._generator_factory(self.account, client)
        if self.provider is None:
            raise ValueError("A provider or generator factory is required to reply")

        tools = ToolRegistry()
        for tool in create_zulip_tools(client):
            tools.register(tool)

        defaults = self.config.agents.defaults
        return AgentReplyGenerator(
            self.provider,
            defaults=defaults,
            tools=tools,
            history=ConversationHistory(defaults.history_limit),
            block_streaming=self.account.config.block_streaming,
            coalesce=self.account.config.block_streaming_coalesce,
        )


def _default_client(account: ResolvedZulipAccount) -> ZulipClient:
    return ZulipClient(account.server_url, account.bot_email, account.api_key)
