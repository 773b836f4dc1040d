"""
Security module for ZulipBot.

Provides channel-level access control:
- DM policies (open, pairing, disabled) and sender allow-lists
- Stream gating by mention or auto-reply stream
- Pairing codes for unknown DM senders
"""

from zulipbot.security.pairing import PairingRequest, PairingStore, build_pairing_reply
from zulipbot.security.policy import (
    PolicyDecision,
    PolicyInput,
    PolicyResult,
    SenderIdentity,
    evaluate_inbound,
    is_sender_allowed,
    normalize_allow_list,
)

__all__ = [
    "PairingRequest",
    "PairingStore",
    "build_pairing_reply",
    "PolicyDecision",
    "PolicyInput",
    "PolicyResult",
    "SenderIdentity",
    "evaluate_inbound",
    "is_sender_allowed",
    "normalize_allow_list",
]
