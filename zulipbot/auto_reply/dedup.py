"""
Inbound message deduplication.

Zulip may redeliver a message after a queue re-registration. Keys are
remembered for a short window so each message is handled at most once.
"""

import threading
import time
from typing import Callable


DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 2000


def dedup_key(account_id: str, message_id: int | str) -> str:
    return f"{account_id}:{message_id}"


class DedupCache:
    """
    Bounded, time-windowed set of recently seen keys.

    Expired entries are only swept once the cache grows past max_entries;
    until then a key stays "seen" regardless of its age.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def seen(self, key: str) -> bool:
        """
        Check and record a key.

        Returns:
            True if the key was already present, False if it was just added.
        """
        with self._lock:
            now = self._clock()
            if len(self._entries) > self.max_entries:
                self._sweep(now)
            if key in self._entries:
                return True
            self._entries[key] = now
            return False

    def _sweep(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        self._entries = {k: ts for k, ts in self._entries.items() if ts >= cutoff}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


# Global cache shared by every account in the process
_dedup_cache: DedupCache | None = None


def get_dedup_cache() -> DedupCache:
    """Get the process-wide dedup cache."""
    global _dedup_cache
    if _dedup_cache is None:
        _dedup_cache = DedupCache()
    return _dedup_cache
