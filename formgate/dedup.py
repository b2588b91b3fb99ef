"""Short-window duplicate-submission suppression.

Form side effects (notification emails) are not idempotent: a double click or a
client retry would send the same emails twice. Each successful submission stores
its response under `"{type}:{identifier}:{minute}"`; a repeat inside the same
minute bucket (and before the entry's TTL runs out) gets the stored response
back instead of re-running the side effect.

Like the rate limiter, the cache is per-instance and lost on cold start.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

UNKNOWN_KEY = "unknown"
MINUTE_S = 60


@dataclass(frozen=True)
class DedupCheck:
    is_duplicate: bool
    key: str
    response: Any = None


@dataclass
class DedupEntry:
    response: Any
    stored_at: float
    expires_at: float


@dataclass
class RequestDeduplicator:
    clock: Callable[[], float] = time.time
    _entries: dict[str, DedupEntry] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def generate_key(self, request_type: str | None, identifier: str | None) -> str | None:
        if not request_type or not identifier:
            return None
        bucket = int(self.clock() // MINUTE_S)
        return f"{request_type}:{identifier}:{bucket}"

    def check_duplicate(
        self,
        request_type: str | None,
        identifier: str | None,
        ttl_s: float | None = None,
    ) -> DedupCheck:
        """Look up a previous response for this submission.

        `ttl_s`, when given, additionally caps how old a stored response may be
        to still count as a duplicate.
        """
        key = self.generate_key(request_type, identifier)
        if key is None:
            return DedupCheck(is_duplicate=False, key=UNKNOWN_KEY)

        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return DedupCheck(is_duplicate=False, key=key)

            fresh = now < entry.expires_at and (ttl_s is None or now - entry.stored_at < ttl_s)
            if fresh:
                return DedupCheck(is_duplicate=True, key=key, response=entry.response)

            del self._entries[key]
        return DedupCheck(is_duplicate=False, key=key)

    def store_response(self, key: str, response: Any, ttl_s: float = 60.0) -> None:
        if not key or key == UNKNOWN_KEY:
            return
        now = self.clock()
        with self._lock:
            self._entries[key] = DedupEntry(response=response, stored_at=now, expires_at=now + ttl_s)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self.clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
