"""Account resolution: base Zulip section merged with per-account overrides."""

from dataclasses import dataclass

from zulipbot.config.schema import Config, ZulipAccountConfig


DEFAULT_ACCOUNT_ID = "default"
DEFAULT_TEXT_CHUNK_LIMIT = 10000


@dataclass
class ResolvedZulipAccount:
    """Effective settings for one configured bot account."""
    account_id: str
    enabled: bool
    config: ZulipAccountConfig
    name: str | None = None
    server_url: str | None = None
    bot_email: str | None = None
    api_key: str | None = None

    @property
    def configured(self) -> bool:
        """True when every credential needed to connect is present."""
        return bool(self.server_url and self.bot_email and self.api_key)

    @property
    def text_chunk_limit(self) -> int:
        return self.config.text_chunk_limit or DEFAULT_TEXT_CHUNK_LIMIT

    def require_credentials(self) -> None:
        """Raise ValueError unless the account can connect."""
        if not self.configured:
            raise ValueError(
                f'Zulip credentials missing for account "{self.account_id}" '
                "(set channels.zulip.serverUrl, botEmail, apiKey)."
            )


def normalize_account_id(account_id: str | None) -> str:
    normalized = (account_id or "").strip().lower()
    return normalized or DEFAULT_ACCOUNT_ID


def list_zulip_account_ids(config: Config) -> list[str]:
    """Sorted ids of named accounts, or the default account when none are named."""
    ids = sorted({normalize_account_id(k) for k in config.channels.zulip.accounts if k.strip()})
    return ids or [DEFAULT_ACCOUNT_ID]


def resolve_default_zulip_account_id(config: Config) -> str:
    ids = list_zulip_account_ids(config)
    if DEFAULT_ACCOUNT_ID in ids:
        return DEFAULT_ACCOUNT_ID
    return ids[0]


def merge_zulip_account_config(config: Config, account_id: str) -> ZulipAccountConfig:
    """Overlay the fields an account explicitly sets onto the base section."""
    section = config.channels.zulip
    base = section.model_dump(exclude={"accounts"})
    overrides = {normalize_account_id(k): v for k, v in section.accounts.items()}
    override = overrides.get(account_id)
    if override is not None:
        base.update(override.model_dump(exclude_unset=True))
    return ZulipAccountConfig.model_validate(base)


def resolve_zulip_account(config: Config, account_id: str | None = None) -> ResolvedZulipAccount:
    """
    Resolve the effective configuration for an account.

    The account is enabled only if neither the base section nor the
    account itself is disabled.
    """
    resolved_id = normalize_account_id(account_id)
    merged = merge_zulip_account_config(config, resolved_id)
    enabled = config.channels.zulip.enabled and merged.enabled

    return ResolvedZulipAccount(
        account_id=resolved_id,
        enabled=enabled,
        config=merged,
        name=merged.name.strip() or None,
        server_url=merged.server_url.strip() or None,
        bot_email=merged.bot_email.strip() or None,
        api_key=merged.api_key.strip() or None,
    )
