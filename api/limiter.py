"""
api/limiter.py -- Request admission control.

Two limiters live here:

  limiter -- the shared slowapi instance for per-route limits, applied with
      @limiter.limit() on write endpoints. A single shared instance keeps one
      in-memory counter store; per-module instances would never trigger.

  TokenBucketLimiter -- per-client token buckets in front of the
      authentication endpoints. Created in the app lifespan and stored on
      app.state.rate_limiter, so tests can inject their own capacity and clock.

Token bucket semantics:
  A bucket starts full (capacity tokens) on first sight of a key and refills
  continuously at capacity / window_seconds tokens per second, never above
  capacity. try_consume() takes one token if at least one is available.

  Check-and-decrement runs under the bucket's own lock, so concurrent requests
  from one client can never consume more than the bucket holds. Creation runs
  under the map lock so two first requests cannot each get a fresh bucket.

Known limitations (accepted):
  Buckets are never evicted. Keys are client addresses, so clients behind one
  NAT share a budget and a client rotating addresses is not limited.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from slowapi import Limiter
from slowapi.util import get_remote_address

if TYPE_CHECKING:
    from core.config import Settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


@dataclass
class _Bucket:
    tokens: float
    updated_at: float
    lock: threading.Lock = field(default_factory=threading.Lock)


class TokenBucketLimiter:
    """Per-key token bucket with greedy refill.

    Usage:
        gate = TokenBucketLimiter(capacity=10, window_seconds=60)
        if not gate.try_consume(client_ip):
            return 429
    """

    def __init__(
        self,
        capacity: int = 10,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1 or window_seconds <= 0:
            raise ValueError("capacity and window_seconds must be positive")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._rate = capacity / window_seconds
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._buckets_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenBucketLimiter:
        return cls(capacity=settings.rate_limit_capacity, window_seconds=settings.rate_limit_window_seconds)

    def _bucket(self, key: str) -> _Bucket:
        bucket = self._buckets.get(key)
        if bucket is None:
            with self._buckets_lock:
                bucket = self._buckets.get(key)
                if bucket is None:
                    bucket = _Bucket(tokens=float(self.capacity), updated_at=self._clock())
                    self._buckets[key] = bucket
        return bucket

    def _refill(self, bucket: _Bucket) -> None:
        # Caller holds bucket.lock
        now = self._clock()
        elapsed = max(0.0, now - bucket.updated_at)
        bucket.tokens = min(float(self.capacity), bucket.tokens + elapsed * self._rate)
        bucket.updated_at = now

    def try_consume(self, key: str) -> bool:
        """Take one token for `key`. Returns False (and takes nothing) if empty."""
        bucket = self._bucket(key)
        with bucket.lock:
            self._refill(bucket)
            if bucket.tokens < 1.0:
                return False
            bucket.tokens -= 1.0
            return True

    def available(self, key: str) -> float:
        """Return the tokens currently available for `key` (refilled to now)."""
        bucket = self._bucket(key)
        with bucket.lock:
            self._refill(bucket)
            return bucket.tokens

    def retry_after(self, key: str) -> int:
        """Whole seconds until `key` has at least one token again."""
        missing = 1.0 - self.available(key)
        if missing <= 0:
            return 0
        return max(1, math.ceil(missing / self._rate))
