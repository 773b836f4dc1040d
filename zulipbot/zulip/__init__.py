"""Zulip REST API client, models and target addressing."""

from zulipbot.zulip.client import PollAborted, ZulipApiError, ZulipClient
from zulipbot.zulip.models import ZulipEvent, ZulipMessage, ZulipProfile, ZulipStream
from zulipbot.zulip.targets import ZulipTarget, parse_target

__all__ = [
    "PollAborted",
    "ZulipApiError",
    "ZulipClient",
    "ZulipEvent",
    "ZulipMessage",
    "ZulipProfile",
    "ZulipStream",
    "ZulipTarget",
    "parse_target",
]
