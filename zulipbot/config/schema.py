"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


DmPolicy = Literal["open", "pairing", "disabled"]
ChunkMode = Literal["length", "newline"]
MarkdownTableMode = Literal["off", "code", "bullets"]


class BlockStreamingCoalesceConfig(BaseModel):
    """Coalescing of streamed reply blocks before delivery."""
    min_chars: int = 1500
    idle_ms: int = 1000


class ZulipAccountConfig(BaseModel):
    """Per-account Zulip settings. Unset fields inherit from the base section."""
    enabled: bool = True
    name: str = ""
    server_url: str = ""  # e.g. https://chat.example.com
    bot_email: str = ""
    api_key: str = ""
    dm_policy: DmPolicy = "pairing"
    allow_from: list[str | int] = Field(default_factory=list)  # User ids, emails or names
    auto_reply_streams: list[str] = Field(default_factory=list)  # Streams answered without a mention
    text_chunk_limit: int | None = None  # None = 10000
    chunk_mode: ChunkMode = "length"
    markdown_tables: MarkdownTableMode = "off"
    block_streaming: bool = False
    block_streaming_coalesce: BlockStreamingCoalesceConfig = Field(
        default_factory=BlockStreamingCoalesceConfig
    )
    typing_keepalive_seconds: float = 10.0


class ZulipConfig(ZulipAccountConfig):
    """Zulip channel configuration: base account plus named overrides."""
    accounts: dict[str, ZulipAccountConfig] = Field(default_factory=dict)


class ChannelsConfig(BaseModel):
    """Configuration for chat channels."""
    zulip: ZulipConfig = Field(default_factory=ZulipConfig)


class AgentDefaults(BaseModel):
    """Default agent configuration."""
    agent_id: str = "main"
    model: str = "anthropic/claude-sonnet-4-5"
    max_tokens: int = 4096
    temperature: float = 0.7
    max_tool_iterations: int = 10
    history_limit: int = 40  # Messages kept per session
    system_prompt: str = (
        "You are a helpful assistant participating in a Zulip organization. "
        "Keep replies concise and use Zulip markdown."
    )


class AgentBinding(BaseModel):
    """Pins conversations matching these fields to a specific agent."""
    agent_id: str
    channel: str = "zulip"
    account_id: str | None = None
    peer_kind: Literal["direct", "channel"] | None = None
    peer_id: str | None = None


class AgentsConfig(BaseModel):
    """Agent configuration."""
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)
    bindings: list[AgentBinding] = Field(default_factory=list)


class MessagesConfig(BaseModel):
    """Inbound message handling."""
    mention_patterns: list[str] = Field(default_factory=list)  # Extra regexes that count as a mention


class SessionConfig(BaseModel):
    """Session routing and persistence."""
    dm_scope: Literal["main", "per-peer", "per-account-peer"] = "per-peer"
    store: str = "~/.zulipbot/sessions.json"

    @property
    def store_path(self) -> Path:
        return Path(self.store).expanduser()


class PairingConfig(BaseModel):
    """Direct-message pairing store."""
    store: str = "~/.zulipbot/pairing"
    request_ttl_seconds: int = 3600

    @property
    def store_path(self) -> Path:
        return Path(self.store).expanduser()


class ProvidersConfig(BaseModel):
    """LLM provider credentials passed to LiteLLM."""
    api_key: str = ""
    api_base: str | None = None
    fallback_models: list[str] = Field(default_factory=list)
    cooldown_seconds: int = 300


class Config(BaseSettings):
    """Root configuration for ZulipBot."""
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    pairing: PairingConfig = Field(default_factory=PairingConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    def get_api_key(self) -> str | None:
        """Get the configured LLM API key, if any."""
        return self.providers.api_key or None

    def get_api_base(self) -> str | None:
        """Get the configured LLM API base URL, if any."""
        return self.providers.api_base or None

    class Config:
        env_prefix = "ZULIPBOT_"
        env_nested_delimiter = "__"
