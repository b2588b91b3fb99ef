from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

KeyType = Literal["ip", "email"]


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-endpoint quota: `limit` requests per `window_s`, keyed by caller IP or submitted email."""

    name: str
    limit: int
    window_s: float
    key: KeyType = "ip"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after_s(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))


@dataclass
class Bucket:
    count: int
    reset_at: float


@dataclass
class FixedWindowRateLimiter:
    """Small in-process fixed-window rate limiter.

    Note: this is per-instance. On a serverless platform (or any scaled
    deployment), each instance enforces its own window and state is lost on
    cold start, so enforcement degrades towards under-limiting.

    Expired buckets are replaced lazily on the next request for the same key;
    `sweep()` reclaims buckets for keys that never come back.
    """

    clock: Callable[[], float] = time.time
    _buckets: dict[str, Bucket] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def is_allowed(self, key: str, limit: int = 10, window_s: float = 60.0) -> RateLimitResult:
        now = self.clock()
        with self._lock:
            bucket = self._buckets.get(key)

            if bucket is None or now >= bucket.reset_at:
                fresh = Bucket(count=1, reset_at=now + window_s)
                self._buckets[key] = fresh
                return RateLimitResult(allowed=True, limit=limit, remaining=limit - 1, reset_at=fresh.reset_at)

            # Rejections neither consume quota nor extend the window.
            if bucket.count >= limit:
                return RateLimitResult(allowed=False, limit=limit, remaining=0, reset_at=bucket.reset_at)

            bucket.count += 1
            return RateLimitResult(
                allowed=True,
                limit=limit,
                remaining=limit - bucket.count,
                reset_at=bucket.reset_at,
            )

    def sweep(self) -> int:
        """Drop buckets whose window has passed. Returns the number removed."""
        now = self.clock()
        with self._lock:
            expired = [k for k, b in self._buckets.items() if now >= b.reset_at]
            for k in expired:
                del self._buckets[k]
        return len(expired)

    def get_bucket(self, key: str) -> Bucket | None:
        with self._lock:
            bucket = self._buckets.get(key)
            return Bucket(count=bucket.count, reset_at=bucket.reset_at) if bucket is not None else None

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()

    def __len__(self) -> int:
        return len(self._buckets)
