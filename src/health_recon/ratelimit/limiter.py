"""Fixed-window request throttle keyed by caller identity."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from health_recon.config import Settings
from health_recon.ratelimit.models import CounterStore, RateLimitDecision, RateLimitStats
from health_recon.ratelimit.stores import InMemoryCounterStore, SqlCounterStore
from health_recon.storage.common import utc_now

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admit at most `limit` checks per key in each fixed window.

    A denied check does not consume quota. If the counter store fails the
    check is admitted with `degraded=True` and a warning is logged.
    """

    def __init__(
        self,
        store: CounterStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self._clock = clock

    def check(self, key: str, limit: int, window_ms: int) -> RateLimitDecision:
        now = self._clock()
        window = timedelta(milliseconds=window_ms)
        if limit <= 0:
            return RateLimitDecision(allowed=False, reset_at=now + window, remaining=0)
        try:
            hit = self.store.hit(key, limit=limit, window=window, now=now)
        except Exception as error:  # noqa: BLE001
            logger.warning(
                "Rate-limit store unavailable for key %s, admitting request: %s",
                key,
                error,
                extra={"rate_limit_key": key, "rate_limit_degraded": True},
            )
            return RateLimitDecision(
                allowed=True,
                reset_at=now + window,
                remaining=0,
                degraded=True,
            )
        decision = RateLimitDecision(
            allowed=hit.allowed,
            reset_at=hit.window_start + window,
            remaining=max(0, limit - hit.count),
        )
        if not decision.allowed:
            logger.info("Rate limit exceeded for key %s until %s", key, decision.reset_at)
        return decision

    def stats(self, *, since: datetime | None = None, limit: int) -> RateLimitStats:
        """Summarize windows active since `since` (default: last hour)."""

        start = since or (self._clock() - timedelta(hours=1))
        return self.store.stats(since=start, limit=limit)

    def prune(self, *, older_than: timedelta) -> int:
        """Delete windows that started more than `older_than` ago."""

        removed = self.store.prune(older_than=self._clock() - older_than)
        logger.info("Pruned %d rate-limit windows", removed)
        return removed


def build_rate_limiter(settings: Settings) -> RateLimiter:
    """Build a limiter over the configured counter backend."""

    if settings.rate_limit.backend == "sql":
        return RateLimiter(SqlCounterStore(settings.db_path))
    return RateLimiter(InMemoryCounterStore())
