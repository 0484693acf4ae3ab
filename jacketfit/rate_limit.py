"""Fixed-window rate limiting for the try-on endpoint."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from fastapi import Request


class CounterStore(Protocol):
    def incr(self, key: str, ttl: float) -> int:
        """Increment `key`, expiring it after `ttl` seconds; return the new count."""
        ...


class MemoryStore:
    """In-process counter store. Not shared between workers."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}

    def incr(self, key: str, ttl: float) -> int:
        now = self._clock()
        # Drop expired windows so the dict does not grow without bound.
        for stale in [k for k, (_, expires) in self._counters.items() if expires <= now]:
            del self._counters[stale]

        count, expires = self._counters.get(key, (0, now + ttl))
        count += 1
        self._counters[key] = (count, expires)
        return count


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    """Allow `limit` hits per key in each `window_seconds` window."""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        store: CounterStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1 or window_seconds < 1:
            raise ValueError("limit and window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self.store = store or MemoryStore(clock=clock)

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        window_start = math.floor(now / self.window_seconds) * self.window_seconds
        window_end = window_start + self.window_seconds

        count = self.store.incr(f"{key}:{window_start}", window_end - now)
        retry_after = max(1, math.ceil(window_end - now))
        return RateLimitDecision(
            allowed=count <= self.limit,
            remaining=max(0, self.limit - count),
            retry_after=retry_after,
        )


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring reverse-proxy headers."""
    if forwarded := request.headers.get("x-forwarded-for"):
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if real_ip := request.headers.get("x-real-ip"):
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"
