"""Per-tool token-bucket rate limiting (per-process, best-effort)."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(slots=True)
class TokenBucket:
    rate: float
    capacity: float
    tokens: float = field(init=False)
    updated_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.tokens = self.capacity
        self.updated_at = time.monotonic()

    def take(self, amount: float = 1.0) -> bool:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated_at) * self.rate)
        self.updated_at = now
        if self.tokens >= amount:
            self.tokens -= amount
            return True
        return False


class PerKeyRateLimiter:
    """
    One token bucket per key (tool name).

    Buckets share ``rate_per_sec``/``burst`` unless ``per_tool`` names a
    different rate for that key, in which case burst equals that rate (min 1).
    """

    def __init__(
        self,
        rate_per_sec: float,
        burst: Optional[float] = None,
        *,
        per_tool: Optional[Dict[str, float]] = None,
    ) -> None:
        self.rate = rate_per_sec
        self.burst = burst if burst is not None else rate_per_sec
        self.per_tool = dict(per_tool or {})
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = asyncio.Lock()

    def _new_bucket(self, key: str) -> TokenBucket:
        override = self.per_tool.get(key)
        if override is not None:
            return TokenBucket(rate=override, capacity=max(override, 1.0))
        return TokenBucket(rate=self.rate, capacity=self.burst)

    async def allow(self, key: str) -> bool:
        async with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._new_bucket(key)
                self._buckets[key] = bucket
            return bucket.take()

    def bucket_for(self, key: str) -> Optional[TokenBucket]:
        return self._buckets.get(key)
