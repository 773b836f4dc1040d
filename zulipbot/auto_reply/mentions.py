"""
Mention detection for stream messages.

Zulip renders user mentions as `@**Full Name**` in raw markdown, with
`@_**Full Name**` for silent mentions and `@**Full Name|123**` when the
name is ambiguous. Extra regex patterns from config also count as a
mention of the bot.
"""

import re
from typing import Iterable

from loguru import logger


def _mention_regex(bot_name: str) -> re.Pattern[str]:
    escaped = re.escape(bot_name)
    return re.compile(rf"@_?\*\*{escaped}(?:\|\d+)?\*\*", re.IGNORECASE)


def build_mention_regexes(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    """Compile configured mention patterns, skipping invalid ones."""
    regexes = []
    for pattern in patterns:
        if not pattern:
            continue
        try:
            regexes.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.warning(f"Ignoring invalid mention pattern {pattern!r}: {e}")
    return regexes


def matches_mention_patterns(text: str, regexes: Iterable[re.Pattern[str]]) -> bool:
    return any(r.search(text) for r in regexes)


def was_bot_mentioned(text: str, bot_name: str | None) -> bool:
    """Check whether the text contains Zulip mention markup for the bot."""
    if not bot_name:
        return False
    return bool(_mention_regex(bot_name).search(text))


def strip_mentions(
    text: str,
    bot_name: str | None,
    regexes: Iterable[re.Pattern[str]] = (),
) -> str:
    """
    Remove bot mentions from a message body.

    Every bot mention markup occurrence and every match of the given
    patterns is replaced by a space; whitespace is then collapsed.
    """
    if bot_name:
        text = _mention_regex(bot_name).sub(" ", text)
    for regex in regexes:
        text = regex.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip()
