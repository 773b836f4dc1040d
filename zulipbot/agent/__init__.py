"""Agent core module."""

from zulipbot.agent.reply import (
    AgentReplyGenerator,
    BlockCoalescer,
    ConversationHistory,
    ReplyGenerator,
)

__all__ = [
    "AgentReplyGenerator",
    "BlockCoalescer",
    "ConversationHistory",
    "ReplyGenerator",
]
