"""Per-account connection status snapshots."""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable


StatusSink = Callable[[dict[str, Any]], None]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AccountStatus:
    """Observable state of one channel account. Timestamps are epoch ms."""
    account_id: str
    name: str | None = None
    enabled: bool = True
    configured: bool = False
    server_url: str | None = None
    running: bool = False
    connected: bool = False
    last_connected_at: int | None = None
    last_disconnect: dict[str, Any] | None = None
    last_error: str | None = None
    last_start_at: int | None = None
    last_stop_at: int | None = None
    last_inbound_at: int | None = None
    last_outbound_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class StatusTracker:
    """
    A status sink that folds patches into an AccountStatus.

    Unknown keys are ignored so producers can report extra detail freely.
    """
    status: AccountStatus
    listeners: list[StatusSink] = field(default_factory=list)

    def __call__(self, patch: dict[str, Any]) -> None:
        for key, value in patch.items():
            if hasattr(self.status, key):
                setattr(self.status, key, value)
        for listener in self.listeners:
            listener(patch)

    def snapshot(self) -> dict[str, Any]:
        return self.status.to_dict()
