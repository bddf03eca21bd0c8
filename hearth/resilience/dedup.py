"""In-process suppression of accidental double-submits.

A best-effort guard against a double tap sending the same command twice
from one process. It is not shared between instances; the
IdempotencyManager is the cross-instance source of truth.
"""

from dataclasses import dataclass

from hearth.observability.logging import get_logger
from hearth.observability.metrics import DEDUP_SUPPRESSED
from hearth.utils.clock import Clock, SystemClock

logger = get_logger(__name__)

DEFAULT_WINDOW_MS = 2000


def create_request_key(device: str, action: str) -> str:
    """Dedup key for a device action, e.g. ``stove:ignite``."""
    return f"{device}:{action}"


@dataclass
class DedupEntry:
    key: str
    expires_at: int


class DeduplicationManager:
    """Tracks in-flight command keys for a short window."""

    def __init__(self, clock: Clock | None = None, window_ms: int = DEFAULT_WINDOW_MS) -> None:
        self._clock = clock or SystemClock()
        self._window_ms = window_ms
        self._entries: dict[str, DedupEntry] = {}

    def is_duplicate(self, key: str) -> bool:
        """Return True if key was seen within the window.

        The first call (or the first after the window lapsed) returns False
        and starts a new window for key.
        """
        now = self._clock.now_ms()
        self._prune(now)

        if key in self._entries:
            DEDUP_SUPPRESSED.inc()
            logger.debug("duplicate_request_suppressed", key=key)
            return True

        self._entries[key] = DedupEntry(key=key, expires_at=now + self._window_ms)
        return False

    def is_in_flight(self, key: str) -> bool:
        """Return True if key is inside its window, without marking it."""
        entry = self._entries.get(key)
        return entry is not None and self._clock.now_ms() <= entry.expires_at

    def clear(self, key: str) -> None:
        """Forget key so the next call is treated as new."""
        self._entries.pop(key, None)

    def _prune(self, now: int) -> None:
        expired = [k for k, entry in self._entries.items() if now > entry.expires_at]
        for k in expired:
            del self._entries[k]
