"""
Session route persistence.

Remembers, per session key, where the last conversation took place so
proactive sends (`zulipbot send --session`) can reach the user again.
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger


@dataclass
class DeliveryContext:
    """Where to deliver replies for a session."""
    channel: str
    to: str
    account_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "to": self.to, "account_id": self.account_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryContext":
        return cls(
            channel=data.get("channel", ""),
            to=data.get("to", ""),
            account_id=data.get("account_id", "default"),
        )


class SessionStore:
    """JSON-file store of session key -> last delivery route."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._sessions: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        """Load sessions from storage."""
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._sessions = dict(data.get("sessions") or {})
            logger.debug(f"Loaded {len(self._sessions)} sessions from {self.path}")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load session store: {e}")

    def _save(self) -> None:
        """Save sessions to storage."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps({"version": 1, "sessions": self._sessions}, indent=2),
            encoding="utf-8",
        )

    def update_last_route(self, session_key: str, delivery: DeliveryContext) -> None:
        """Record the most recent delivery route for a session."""
        entry = self._sessions.setdefault(session_key, {})
        entry["last_route"] = delivery.to_dict()
        entry["updated_at"] = int(time.time() * 1000)
        self._save()

    def get_last_route(self, session_key: str) -> DeliveryContext | None:
        entry = self._sessions.get(session_key)
        if not entry or "last_route" not in entry:
            return None
        return DeliveryContext.from_dict(entry["last_route"])

    def list_sessions(self) -> dict[str, DeliveryContext]:
        return {
            key: DeliveryContext.from_dict(entry["last_route"])
            for key, entry in self._sessions.items()
            if "last_route" in entry
        }
