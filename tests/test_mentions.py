"""
Tests for mention detection and stripping.
"""

from zulipbot.auto_reply.mentions import (
    build_mention_regexes,
    matches_mention_patterns,
    strip_mentions,
    was_bot_mentioned,
)


class TestWasBotMentioned:
    """Tests for Zulip mention markup detection."""

    def test_plain_mention(self):
        """Test @**Name** markup."""
        assert was_bot_mentioned("hi @**Helper Bot** there", "Helper Bot") is True

    def test_silent_mention_and_case(self):
        """Test silent @_** markup, matched case-insensitively."""
        assert was_bot_mentioned("@_**helper bot** fyi", "Helper Bot") is True

    def test_disambiguated_mention(self):
        """Test @**Name|id** markup."""
        assert was_bot_mentioned("@**Helper Bot|12** ping", "Helper Bot") is True

    def test_other_user_not_a_mention(self):
        """Test that mentioning someone else does not count."""
        assert was_bot_mentioned("@**Alice** ping", "Helper Bot") is False

    def test_missing_bot_name(self):
        """Test that an unknown bot name never matches."""
        assert was_bot_mentioned("@**Helper Bot**", None) is False


class TestMentionPatterns:
    """Tests for configured mention patterns."""

    def test_invalid_patterns_are_skipped(self):
        """Test that bad regexes are ignored rather than raising."""
        regexes = build_mention_regexes([r"\bhey bot\b", "([unclosed", ""])

        assert len(regexes) == 1
        assert matches_mention_patterns("HEY BOT, status?", regexes) is True
        assert matches_mention_patterns("hello", regexes) is False


class TestStripMentions:
    """Tests for strip_mentions."""

    def test_strips_markup_and_collapses_whitespace(self):
        """Test that the mention is removed and spacing normalized."""
        assert strip_mentions("@**Helper Bot**   what   is up?", "Helper Bot") == "what is up?"

    def test_strips_every_occurrence(self):
        """Test that repeated mentions are all removed."""
        text = "@**Helper Bot** one @_**Helper Bot** two"
        assert strip_mentions(text, "Helper Bot") == "one two"

    def test_strips_pattern_matches(self):
        """Test that configured pattern matches are removed too."""
        regexes = build_mention_regexes([r"\bhey bot\b"])
        assert strip_mentions("hey bot deploy now", "Helper Bot", regexes) == "deploy now"

    def test_mention_only_becomes_empty(self):
        """Test that a bare mention leaves an empty body."""
        assert strip_mentions("@**Helper Bot**", "Helper Bot") == ""
