"""Per-client admission control with a fixed, resetting window."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import replace

from discussion_guide.config import RateLimitConfig
from discussion_guide.types import RateLimitEntry

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


class RateLimiter:
    """Counts requests per client key inside a fixed window.

    The window restarts on the first request after it elapses, so a client
    can burst up to twice the budget around a window boundary. Entries are
    created on first sight and never evicted; the table grows with the number
    of distinct clients seen by this process.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def admit(self, client_key: str) -> bool:
        """Record one request for `client_key` and return whether it is allowed."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(client_key)
            if entry is None:
                self._entries[client_key] = RateLimitEntry(
                    client_key=client_key, count=1, window_start=now
                )
                return True

            if now - entry.window_start >= self.config.window_seconds:
                entry.count = 1
                entry.window_start = now
                return True

            if entry.count < self.config.max_requests:
                entry.count += 1
                return True

        logger.warning("Rate limit exceeded for client %s", client_key)
        return False

    def entry(self, client_key: str) -> RateLimitEntry | None:
        with self._lock:
            entry = self._entries.get(client_key)
            return replace(entry) if entry is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit key from the forwarded client address."""
    forwarded = headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    return first or UNKNOWN_CLIENT
