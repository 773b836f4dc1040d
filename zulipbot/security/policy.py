"""
Inbound message policy for ZulipBot.

Decides whether a message reaches the agent. Supports:
- DM policies (open, pairing, disabled)
- Sender allow-lists matched on id, email or display name
- Auto-reply streams that answer without a mention
- Mention gating for all other streams
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Iterable, Literal

from zulipbot.bus.events import ConversationKind


DmPolicy = Literal["open", "pairing", "disabled"]

_ALLOW_PREFIXES = ("zulip:", "user:")


class PolicyDecision(str, Enum):
    """Result of a policy check."""
    PROCESS = "process"
    DROP = "drop"
    PAIRING = "pairing"


@dataclass(frozen=True)
class SenderIdentity:
    """Who sent a message, as far as allow-list matching is concerned."""
    id: str
    email: str = ""
    name: str = ""


@dataclass
class PolicyInput:
    """Everything the evaluator needs to judge one inbound message."""
    kind: ConversationKind
    sender: SenderIdentity
    allow_from: frozenset[str]
    dm_policy: DmPolicy = "pairing"
    stream_name: str = ""
    was_mentioned: bool = False
    auto_reply_streams: list[str] = field(default_factory=list)


@dataclass
class PolicyResult:
    """Outcome of evaluate_inbound."""
    decision: PolicyDecision
    reason: str = ""
    command_authorized: bool = False

    @property
    def should_process(self) -> bool:
        return self.decision == PolicyDecision.PROCESS


def normalize_allow_entry(entry: str | int) -> str:
    """Trim, drop a `zulip:` or `user:` prefix, and lowercase."""
    value = str(entry).strip()
    lowered = value.lower()
    for prefix in _ALLOW_PREFIXES:
        if lowered.startswith(prefix):
            value = value[len(prefix):]
            break
    return value.strip().lower()


def normalize_allow_list(entries: Iterable[str | int]) -> frozenset[str]:
    """Normalize entries into an allow-list, discarding empty ones."""
    return frozenset(e for e in (normalize_allow_entry(x) for x in entries) if e)


def is_sender_allowed(sender: SenderIdentity, allow_from: frozenset[str]) -> bool:
    """
    Check a sender against an allow-list.

    An empty list allows nobody; "*" allows everybody.
    """
    if not allow_from:
        return False
    if "*" in allow_from:
        return True
    candidates = {
        normalize_allow_entry(value)
        for value in (sender.id, sender.email, sender.name)
        if value
    }
    return bool(candidates & allow_from)


def is_auto_reply_stream(stream_name: str, auto_reply_streams: Iterable[str]) -> bool:
    target = stream_name.lower()
    return bool(target) and any(s.lower() == target for s in auto_reply_streams)


def evaluate_inbound(policy: PolicyInput) -> PolicyResult:
    """
    Evaluate an inbound message against channel policy.

    Rules are checked in order:
    1. Stream message outside auto-reply streams -> PROCESS if mentioned, else DROP
    2. Stream message in an auto-reply stream -> DROP if a non-empty
       allow-list excludes the sender, else PROCESS
    3. DM with policy "disabled" -> DROP
    4. DM with policy "open" -> PROCESS
    5. DM with policy "pairing" from an allowed sender -> PROCESS
    6. DM with policy "pairing" from anyone else -> PAIRING

    Args:
        policy: The message facts and the account's policy settings.

    Returns:
        PolicyResult with the decision and whether commands are authorized.
    """
    allowed = is_sender_allowed(policy.sender, policy.allow_from)

    if policy.kind == ConversationKind.BROADCAST:
        if not is_auto_reply_stream(policy.stream_name, policy.auto_reply_streams):
            if not policy.was_mentioned:
                return PolicyResult(PolicyDecision.DROP, "no_mention")
            return PolicyResult(PolicyDecision.PROCESS, "mentioned", command_authorized=allowed)

        if policy.allow_from and not allowed:
            return PolicyResult(PolicyDecision.DROP, "not_allowed")
        return PolicyResult(PolicyDecision.PROCESS, "auto_reply_stream", command_authorized=allowed)

    if policy.dm_policy == "disabled":
        return PolicyResult(PolicyDecision.DROP, "dm_disabled")
    if policy.dm_policy == "open":
        return PolicyResult(PolicyDecision.PROCESS, "dm_open", command_authorized=True)
    if allowed:
        return PolicyResult(PolicyDecision.PROCESS, "dm_allowed", command_authorized=True)
    return PolicyResult(PolicyDecision.PAIRING, "dm_pairing")
