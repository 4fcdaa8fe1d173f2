"""Rate limiter decisions and counter-store contract."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol


@dataclass(slots=True)
class RateLimitDecision:
    """Outcome of one rate-limit check."""

    allowed: bool
    reset_at: datetime
    remaining: int
    degraded: bool = False

    def retry_after_seconds(self, now: datetime) -> int:
        """Whole seconds until the window resets, never below one."""

        return max(1, int((self.reset_at - now).total_seconds() + 0.999))


@dataclass(slots=True)
class CounterHit:
    """Counter state observed by one atomic hit against a key."""

    allowed: bool
    window_start: datetime
    count: int


@dataclass(slots=True)
class RateLimitStats:
    """Summary of recently active windows."""

    active_keys: int
    total_requests: int
    keys_at_limit: int
    top_keys: list[tuple[str, int]]


class CounterStore(Protocol):
    """Backing store for fixed-window counters; `hit` must be atomic per key."""

    def hit(self, key: str, *, limit: int, window: timedelta, now: datetime) -> CounterHit:
        """Count one request unless the active window is already at `limit`."""

    def stats(self, *, since: datetime, limit: int, top: int = 5) -> RateLimitStats:
        """Summarize windows started at or after `since`."""

    def prune(self, *, older_than: datetime) -> int:
        """Delete windows started before `older_than`; return how many were removed."""
