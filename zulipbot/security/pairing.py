"""
DM pairing store for ZulipBot.

Unknown senders under the "pairing" DM policy receive a one-time code.
An operator approves the code (`zulipbot pairing approve CODE`), which
moves the sender into the persisted allow-list.
"""

import json
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from loguru import logger


CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8
DEFAULT_REQUEST_TTL_SECONDS = 3600


@dataclass
class PairingRequest:
    """A pending request from an unapproved DM sender."""
    id: str
    code: str
    created_at: float
    last_seen_at: float
    meta: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "code": self.code,
            "created_at": datetime.fromtimestamp(self.created_at).isoformat(),
            "last_seen_at": datetime.fromtimestamp(self.last_seen_at).isoformat(),
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PairingRequest":
        """Create from dictionary."""
        created = datetime.fromisoformat(data["created_at"]).timestamp()
        last_seen = data.get("last_seen_at")
        return cls(
            id=str(data["id"]),
            code=data["code"],
            created_at=created,
            last_seen_at=datetime.fromisoformat(last_seen).timestamp() if last_seen else created,
            meta=dict(data.get("meta") or {}),
        )


class PairingStore:
    """
    JSON-file backed pairing requests and approved senders for one channel.

    Files:
    - <channel>-pairing.json: pending requests
    - <channel>-allow-from.json: approved sender ids
    """

    def __init__(
        self,
        store_dir: Path,
        channel: str = "zulip",
        request_ttl_seconds: int = DEFAULT_REQUEST_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store_dir = Path(store_dir).expanduser()
        self.channel = channel
        self.request_ttl_seconds = request_ttl_seconds
        self._clock = clock

    @property
    def requests_path(self) -> Path:
        return self.store_dir / f"{self.channel}-pairing.json"

    @property
    def allow_from_path(self) -> Path:
        return self.store_dir / f"{self.channel}-allow-from.json"

    def _read_json(self, path: Path, key: str) -> list[Any]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read pairing store {path}: {e}")
            return []
        return list(data.get(key) or [])

    def _write_json(self, path: Path, key: str, items: list[Any]) -> None:
        self.store_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"version": 1, key: items}, indent=2), encoding="utf-8")

    def _load_requests(self) -> list[PairingRequest]:
        now = self._clock()
        requests = []
        for raw in self._read_json(self.requests_path, "requests"):
            try:
                req = PairingRequest.from_dict(raw)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed pairing request: {e}")
                continue
            if now - req.created_at <= self.request_ttl_seconds:
                requests.append(req)
        return requests

    def _save_requests(self, requests: list[PairingRequest]) -> None:
        self._write_json(self.requests_path, "requests", [r.to_dict() for r in requests])

    def upsert_request(self, sender_id: str, meta: dict[str, str] | None = None) -> tuple[str, bool]:
        """
        Record a pairing request for a sender.

        Repeated calls before approval return the existing code and only
        refresh last_seen_at.

        Returns:
            (code, created) where created is True only for a new request.
        """
        sender_id = str(sender_id)
        now = self._clock()
        requests = self._load_requests()

        for req in requests:
            if req.id == sender_id:
                req.last_seen_at = now
                if meta:
                    req.meta.update(meta)
                self._save_requests(requests)
                return req.code, False

        existing_codes = {r.code for r in requests}
        code = _generate_code()
        while code in existing_codes:
            code = _generate_code()

        requests.append(PairingRequest(
            id=sender_id,
            code=code,
            created_at=now,
            last_seen_at=now,
            meta=dict(meta or {}),
        ))
        self._save_requests(requests)
        logger.info(f"{self.channel} pairing request from {sender_id} (code {code})")
        return code, True

    def list_requests(self) -> list[PairingRequest]:
        """Pending, unexpired requests."""
        return self._load_requests()

    def approve(self, code_or_id: str) -> PairingRequest | None:
        """
        Approve a pending request by code (case-insensitive) or sender id.

        Returns:
            The approved request, or None if nothing matched.
        """
        needle = code_or_id.strip()
        requests = self._load_requests()
        match = next(
            (r for r in requests if r.code == needle.upper() or r.id == needle),
            None,
        )
        if match is None:
            return None

        self._save_requests([r for r in requests if r is not match])
        self.add_allow_from(match.id)
        logger.info(f"{self.channel} pairing approved for {match.id}")
        return match

    def read_allow_from(self) -> list[str]:
        """Sender ids approved through pairing."""
        return [str(e) for e in self._read_json(self.allow_from_path, "allowFrom")]

    def add_allow_from(self, entry: str) -> None:
        entries = self.read_allow_from()
        if entry not in entries:
            entries.append(entry)
            self._write_json(self.allow_from_path, "allowFrom", entries)

    def remove_allow_from(self, entry: str) -> bool:
        entries = self.read_allow_from()
        if entry not in entries:
            return False
        entries.remove(entry)
        self._write_json(self.allow_from_path, "allowFrom", entries)
        return True


def _generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def build_pairing_reply(sender_id: str, code: str) -> str:
    """Text sent to an unapproved DM sender."""
    return (
        "I don't recognize you yet, so I can't answer here.\n\n"
        f"Your Zulip user id: {sender_id}\n"
        f"Pairing code: **{code}**\n\n"
        "Ask the bot owner to approve you with:\n"
        f"`zulipbot pairing approve {code}`"
    )
