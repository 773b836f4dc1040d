"""Conversation routing."""
