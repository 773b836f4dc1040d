"""Channel manager: runs every enabled Zulip account side by side."""

import asyncio
from typing import Any

from loguru import logger

from zulipbot.channels.zulip import GeneratorFactory, ZulipChannel
from zulipbot.config.schema import Config
from zulipbot.providers.base import LLMProvider
from zulipbot.zulip.accounts import list_zulip_account_ids, normalize_account_id, resolve_zulip_account


class ChannelManager:
    """
    Owns one ZulipChannel per enabled, configured account.

    A failing account is logged and does not take the others down.
    """

    def __init__(
        self,
        config: Config,
        provider: LLMProvider | None = None,
        account_ids: list[str] | None = None,
        generator_factory: GeneratorFactory | None = None,
    ):
        self.config = config
        self.channels: dict[str, ZulipChannel] = {}

        ids = [normalize_account_id(a) for a in account_ids] if account_ids else list_zulip_account_ids(config)
        for account_id in ids:
            account = resolve_zulip_account(config, account_id)
            if not account.enabled:
                logger.info(f"zulip[{account_id}] disabled, skipping")
                continue
            if not account.configured:
                logger.warning(f"zulip[{account_id}] missing serverUrl/botEmail/apiKey, skipping")
                continue
            self.channels[account_id] = ZulipChannel(
                config,
                account_id,
                provider=provider,
                generator_factory=generator_factory,
            )

    @property
    def enabled_channels(self) -> list[str]:
        return [f"zulip:{account_id}" for account_id in self.channels]

    def get_channel(self, account_id: str | None = None) -> ZulipChannel | None:
        return self.channels.get(normalize_account_id(account_id))

    async def start_all(self) -> None:
        """Start all channels and wait until every one has stopped."""
        if not self.channels:
            logger.warning("No Zulip accounts enabled")
            return
        await asyncio.gather(*(self._run_channel(c) for c in self.channels.values()))

    async def _run_channel(self, channel: ZulipChannel) -> None:
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"zulip[{channel.account_id}] channel failed: {e}")

    async def stop_all(self) -> None:
        for channel in self.channels.values():
            await channel.stop()

    def get_status(self) -> dict[str, Any]:
        return {account_id: c.status.snapshot() for account_id, c in self.channels.items()}
