"""ZulipBot - Zulip chat bridge for LLM agents."""

__version__ = "0.1.0"
__logo__ = "💬"
