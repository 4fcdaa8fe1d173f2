"""Counter stores backing the rate limiter."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from health_recon.ratelimit.models import CounterHit, RateLimitStats
from health_recon.storage.common import build_sqlite_engine, to_db_datetime, to_utc_aware
from health_recon.storage.sqlmodel_models import RequestLimit

MAX_INSERT_ATTEMPTS = 5


@dataclass(slots=True)
class _Window:
    window_start: datetime
    length: timedelta
    count: int


class InMemoryCounterStore:
    """Process-local counters for single-instance deployments.

    Expired windows are swept at most once per window length, so the map
    only holds keys seen within their current window.
    """

    def __init__(self) -> None:
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep: datetime | None = None

    def hit(self, key: str, *, limit: int, window: timedelta, now: datetime) -> CounterHit:
        with self._lock:
            self._sweep_expired(now=now, interval=window)
            current = self._windows.get(key)
            if current is None or now - current.window_start > window:
                current = _Window(window_start=now, length=window, count=0)
                self._windows[key] = current
            if current.count >= limit:
                return CounterHit(
                    allowed=False,
                    window_start=current.window_start,
                    count=current.count,
                )
            current.count += 1
            return CounterHit(allowed=True, window_start=current.window_start, count=current.count)

    def _sweep_expired(self, *, now: datetime, interval: timedelta) -> None:
        if self._last_sweep is not None and now - self._last_sweep < interval:
            return
        self._last_sweep = now
        expired = [
            key for key, item in self._windows.items() if now - item.window_start > item.length
        ]
        for key in expired:
            del self._windows[key]

    def stats(self, *, since: datetime, limit: int, top: int = 5) -> RateLimitStats:
        with self._lock:
            active = [
                (key, item.count)
                for key, item in self._windows.items()
                if item.window_start >= since
            ]
        return _summarize(active, limit=limit, top=top)

    def prune(self, *, older_than: datetime) -> int:
        with self._lock:
            stale = [key for key, item in self._windows.items() if item.window_start < older_than]
            for key in stale:
                del self._windows[key]
        return len(stale)


class SqlCounterStore:
    """Counters shared between processes through the `request_limits` table.

    Each hit is a sequence of conditional statements; a row is only
    incremented while its window is active and below the limit, so two
    callers can never both be admitted past the limit.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def close(self) -> None:
        self.engine.dispose()

    def hit(self, key: str, *, limit: int, window: timedelta, now: datetime) -> CounterHit:
        now_db = to_db_datetime(now)
        active_since = to_db_datetime(now - window)
        for _ in range(MAX_INSERT_ATTEMPTS):
            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(RequestLimit)
                    .where(
                        col(RequestLimit.key) == key,
                        col(RequestLimit.window_start) >= active_since,
                        col(RequestLimit.count) < limit,
                    )
                    .values(count=col(RequestLimit.count) + 1, updated_at=now_db),
                )
                if result.rowcount == 1:
                    session.commit()
                    row = session.exec(select(RequestLimit).where(RequestLimit.key == key)).one()
                    return CounterHit(
                        allowed=True,
                        window_start=to_utc_aware(row.window_start),
                        count=row.count,
                    )

                result = session.exec(
                    sa_update(RequestLimit)
                    .where(
                        col(RequestLimit.key) == key,
                        col(RequestLimit.window_start) < active_since,
                    )
                    .values(count=1, window_start=now_db, updated_at=now_db),
                )
                if result.rowcount == 1:
                    session.commit()
                    return CounterHit(allowed=True, window_start=to_utc_aware(now_db), count=1)

                row = session.exec(
                    select(RequestLimit).where(RequestLimit.key == key),
                ).one_or_none()
                if row is not None:
                    session.rollback()
                    if row.count >= limit and row.window_start >= active_since:
                        return CounterHit(
                            allowed=False,
                            window_start=to_utc_aware(row.window_start),
                            count=row.count,
                        )
                    continue

                session.add(
                    RequestLimit(key=key, window_start=now_db, count=1, updated_at=now_db),
                )
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    continue
                return CounterHit(allowed=True, window_start=to_utc_aware(now_db), count=1)
        raise RuntimeError(f"Rate-limit counter for {key!r} kept changing under contention.")

    def stats(self, *, since: datetime, limit: int, top: int = 5) -> RateLimitStats:
        with Session(self.engine) as session:
            rows = session.exec(
                select(RequestLimit.key, RequestLimit.count).where(
                    col(RequestLimit.window_start) >= to_db_datetime(since),
                ),
            ).all()
        return _summarize([(key, count) for key, count in rows], limit=limit, top=top)

    def prune(self, *, older_than: datetime) -> int:
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(RequestLimit).where(
                    col(RequestLimit.window_start) < to_db_datetime(older_than),
                ),
            )
            session.commit()
            return int(result.rowcount or 0)

    def count_for(self, key: str) -> int | None:
        """Current stored count for a key, or None if the key has no window."""

        with Session(self.engine) as session:
            value = session.exec(
                select(RequestLimit.count).where(RequestLimit.key == key),
            ).one_or_none()
        return int(value) if value is not None else None


def _summarize(active: list[tuple[str, int]], *, limit: int, top: int) -> RateLimitStats:
    ranked = sorted(active, key=lambda item: (-item[1], item[0]))
    return RateLimitStats(
        active_keys=len(active),
        total_requests=sum(count for _, count in active),
        keys_at_limit=sum(1 for _, count in active if count >= limit),
        top_keys=ranked[:top],
    )
