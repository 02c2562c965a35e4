"""
Fixed-window request counters for local rate limiting.

Windows are one hour long and start at the first request a subject makes after
its previous window expired. The counters are advisory: the relay enforces the
authoritative limit, this table only avoids sending requests the relay would
reject anyway. Nothing here is persisted, so a restart starts every subject
with an empty window.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

from commandless.relay.signing import now_unix_ms

WINDOW_MS = 60 * 60 * 1000


@dataclass(slots=True)
class RateLimitEntry:
    """Request count for one subject and the epoch-ms time its window ends."""

    count: int
    reset_at: int

    def is_expired(self, now: int) -> bool:
        return now > self.reset_at


class RateLimitWindow:
    """
    Table of fixed-window counters keyed by subject.

    Args:
        window_ms: Length of each window in milliseconds.
        clock: Returns the current time in epoch milliseconds.
    """

    def __init__(self, window_ms: int = WINDOW_MS, clock: Callable[[], int] = now_unix_ms) -> None:
        self.window_ms = window_ms
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}

    def hit(self, key: str, limit: int, now: Optional[int] = None) -> bool:
        """
        Count one request for ``key`` against ``limit``.

        A missing or expired entry starts a fresh window with a count of one and
        is always allowed. Otherwise the request is allowed and counted only
        while the count is below ``limit``; a denied request is not counted.

        Returns:
            bool: True if the request fits in the current window.
        """
        if now is None:
            now = self._clock()

        entry = self._entries.get(key)
        if entry is None or entry.is_expired(now):
            self._entries[key] = RateLimitEntry(count=1, reset_at=now + self.window_ms)
            return True

        if entry.count >= limit:
            return False

        entry.count += 1
        return True

    def evict_expired(self, now: Optional[int] = None) -> int:
        """Drop every entry whose window has ended. Returns the number removed."""
        if now is None:
            now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
