"""Agent tools module."""

from zulipbot.agent.tools.base import Tool, ToolRegistry
from zulipbot.agent.tools.zulip import ZulipSendTool, ZulipStreamsTool, create_zulip_tools

__all__ = [
    "Tool",
    "ToolRegistry",
    "ZulipSendTool",
    "ZulipStreamsTool",
    "create_zulip_tools",
]
