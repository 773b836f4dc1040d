"""
Conversation routing for ZulipBot.

Maps a message's origin to an agent and a session key, and to the address
replies should go to. Supports:
- Agent bindings by channel, account and peer
- DM session scoping (shared main session, per peer, per account and peer)
- Last-route persistence for direct messages
"""

from dataclasses import dataclass
from typing import Literal

from zulipbot.bus.events import InboundMessage
from zulipbot.config.schema import AgentBinding, Config
from zulipbot.session.store import DeliveryContext, SessionStore
from zulipbot.zulip.targets import format_dm_target, format_stream_target


PeerKind = Literal["direct", "channel"]


@dataclass(frozen=True)
class RoutePeer:
    """The other side of a conversation."""
    kind: PeerKind
    id: str


@dataclass
class AgentRoute:
    """Result of resolve_agent_route."""
    agent_id: str
    channel: str
    account_id: str
    session_key: str
    main_session_key: str
    matched_binding: bool = False


@dataclass
class ConversationRoute:
    """Where a message's conversation lives and where replies go."""
    session_key: str
    main_session_key: str
    agent_id: str
    account_id: str
    to: str
    chat_type: PeerKind
    peer: RoutePeer


def _binding_matches(binding: AgentBinding, channel: str, account_id: str, peer: RoutePeer) -> bool:
    if binding.channel.lower() != channel.lower():
        return False
    if binding.account_id and binding.account_id.lower() != account_id.lower():
        return False
    if binding.peer_kind and binding.peer_kind != peer.kind:
        return False
    if binding.peer_id and binding.peer_id.lower() != peer.id.lower():
        return False
    return True


def build_main_session_key(agent_id: str) -> str:
    return f"agent:{agent_id}:main"


def resolve_agent_route(
    config: Config,
    channel: str,
    account_id: str,
    peer: RoutePeer,
) -> AgentRoute:
    """
    Resolve which agent and session handle a conversation.

    Pure: depends only on its arguments.

    Args:
        config: Root configuration (bindings, session scope).
        channel: Channel name, e.g. "zulip".
        account_id: Effective account id.
        peer: Conversation peer (DM user or stream).

    Returns:
        AgentRoute with session keys.
    """
    agent_id = config.agents.defaults.agent_id
    matched = False
    for binding in config.agents.bindings:
        if _binding_matches(binding, channel, account_id, peer):
            agent_id = binding.agent_id
            matched = True
            break

    main_key = build_main_session_key(agent_id)
    peer_id = peer.id.strip().lower()

    if peer.kind == "channel":
        session_key = f"agent:{agent_id}:{channel}:channel:{peer_id}"
    elif config.session.dm_scope == "main":
        session_key = main_key
    elif config.session.dm_scope == "per-account-peer":
        session_key = f"agent:{agent_id}:{channel}:{account_id}:dm:{peer_id}"
    else:
        session_key = f"agent:{agent_id}:dm:{peer_id}"

    return AgentRoute(
        agent_id=agent_id,
        channel=channel,
        account_id=account_id,
        session_key=session_key,
        main_session_key=main_key,
        matched_binding=matched,
    )


class RouteResolver:
    """Resolves conversation routes for one channel's inbound messages."""

    def __init__(
        self,
        config: Config,
        session_store: SessionStore | None = None,
        channel: str = "zulip",
    ):
        self.config = config
        self.session_store = session_store
        self.channel = channel

    def resolve(self, message: InboundMessage, account_id: str) -> ConversationRoute:
        """Resolve the route for a message. Has no side effects."""
        if message.is_direct:
            peer = RoutePeer(kind="direct", id=message.sender_id)
            to = format_dm_target(message.sender_id)
        else:
            peer = RoutePeer(kind="channel", id=message.stream_name or message.sender_id)
            to = format_stream_target(message.stream_name, message.topic)

        route = resolve_agent_route(self.config, self.channel, account_id, peer)
        return ConversationRoute(
            session_key=route.session_key,
            main_session_key=route.main_session_key,
            agent_id=route.agent_id,
            account_id=route.account_id,
            to=to,
            chat_type=peer.kind,
            peer=peer,
        )

    def record_last_route(self, route: ConversationRoute) -> None:
        """Persist a DM route under the agent's main session key."""
        if route.chat_type != "direct" or self.session_store is None:
            return
        self.session_store.update_last_route(
            route.main_session_key,
            DeliveryContext(channel=self.channel, to=route.to, account_id=route.account_id),
        )
