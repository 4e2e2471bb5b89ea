"""
Daily request limiting.

One counter per UTC day. The canonical counter lives in PostgreSQL
(``daily_api_counters``); an in-process counter can be supplied at
construction as the fallback used while the database is unreachable.

Usage:
    limiter = DailyRateLimiter(
        PostgresCounterStore(vector_store),
        limit=100,
        fallback=InMemoryCounterStore(),
    )
    if not limiter.try_consume():
        raise RateLimitExceeded(limiter.limit)
"""

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from .exceptions import StoreQueryFailed

logger = logging.getLogger(__name__)

COUNTER_TABLE = "daily_api_counters"


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def day_key(day: date) -> str:
    return day.isoformat()


class CounterStore:
    """Interface for a per-day request counter."""

    def count(self, day: str) -> int:
        raise NotImplementedError

    def try_increment(self, day: str, limit: int) -> bool:
        """Increment if the count is below ``limit``; return whether it did."""
        raise NotImplementedError

    def reset(self, day: str) -> None:
        raise NotImplementedError


class PostgresCounterStore(CounterStore):
    """Counter rows in ``daily_api_counters(day TEXT PRIMARY KEY, count INTEGER)``."""

    def __init__(self, vector_store, table: str = COUNTER_TABLE):
        self.store = vector_store
        self.table = table
        self._schema_ready = False

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS {self.table} ("
                    "day TEXT PRIMARY KEY, count INTEGER NOT NULL)"
                )
            conn.commit()

        self.store.run(_op, "counter_schema")
        self._schema_ready = True

    def count(self, day: str) -> int:
        self.ensure_schema()

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(f"SELECT count FROM {self.table} WHERE day = %s", (day,))
                row = cur.fetchone()
            conn.commit()
            if not row:
                return 0
            value = row["count"] if hasattr(row, "keys") else row[0]
            return int(value or 0)

        return self.store.run(_op, "counter_read")

    def try_increment(self, day: str, limit: int) -> bool:
        self.ensure_schema()

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    f"INSERT INTO {self.table} (day, count) VALUES (%s, 0) ON CONFLICT (day) DO NOTHING",
                    (day,),
                )
                cur.execute(f"SELECT count FROM {self.table} WHERE day = %s FOR UPDATE", (day,))
                row = cur.fetchone()
                current = int((row["count"] if hasattr(row, "keys") else row[0]) or 0) if row else 0
                if current >= limit:
                    conn.rollback()
                    return False
                cur.execute(f"UPDATE {self.table} SET count = count + 1 WHERE day = %s", (day,))
            conn.commit()
            return True

        return self.store.run(_op, "counter_increment")

    def reset(self, day: str) -> None:
        self.ensure_schema()

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM {self.table} WHERE day = %s", (day,))
            conn.commit()

        self.store.run(_op, "counter_reset")


class InMemoryCounterStore(CounterStore):
    """Thread-safe in-process counter that keeps only the most recent days."""

    def __init__(self, keep_days: int = 3):
        self.keep_days = keep_days
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def count(self, day: str) -> int:
        with self._lock:
            return self._counts.get(day, 0)

    def try_increment(self, day: str, limit: int) -> bool:
        with self._lock:
            current = self._counts.get(day, 0)
            if current >= limit:
                return False
            self._counts[day] = current + 1
            self._cleanup(day)
            return True

    def reset(self, day: str) -> None:
        with self._lock:
            self._counts.pop(day, None)

    def _cleanup(self, today: str) -> None:
        try:
            newest = date.fromisoformat(today)
        except ValueError:
            return
        keep = {day_key(newest - timedelta(days=i)) for i in range(self.keep_days)}
        for day in list(self._counts):
            if day not in keep:
                del self._counts[day]


class DailyRateLimiter:
    """
    Daily request limit over a counter store.

    If ``fallback`` is given, a StoreQueryFailed from the primary store is
    logged and the call is answered by the fallback; otherwise it propagates.
    """

    def __init__(
        self,
        store: CounterStore,
        limit: int = 100,
        fallback: Optional[CounterStore] = None,
        clock: Callable[[], date] = utc_today,
    ):
        self.store = store
        self.limit = limit
        self.fallback = fallback
        self.clock = clock

    def _today(self) -> str:
        return day_key(self.clock())

    def _call(self, method: str, *args):
        try:
            return getattr(self.store, method)(*args)
        except StoreQueryFailed as e:
            if self.fallback is None:
                raise
            logger.warning(f"Rate limit store unavailable ({e}); using fallback counter")
            return getattr(self.fallback, method)(*args)

    def try_consume(self) -> bool:
        """Take one request slot for today; False when the limit is reached."""
        allowed = self._call("try_increment", self._today(), self.limit)
        if not allowed:
            logger.info(f"Daily limit of {self.limit} requests reached")
        return allowed

    def count_for_today(self) -> int:
        return self._call("count", self._today())

    def remaining(self) -> int:
        return max(0, self.limit - self.count_for_today())

    def is_over_limit(self) -> bool:
        return self.count_for_today() >= self.limit

    def reset(self) -> None:
        self._call("reset", self._today())
