# tax_lot_engine/services/report_cache.py
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from tax_lot_engine import config
from tax_lot_engine.domain.enums import ReportKind

logger = logging.getLogger(__name__)

NO_EXPIRATION = -1
DEFAULT_EXPIRATION = 0

# Resolver outputs live until the user's data changes; combined views also age out
KIND_LIFETIMES: Dict[ReportKind, int] = {
    ReportKind.STOCK_SALES: NO_EXPIRATION,
    ReportKind.STOCK_HOLDINGS: NO_EXPIRATION,
    ReportKind.FEE_DETAILS: NO_EXPIRATION,
    ReportKind.LATEST_UPLOAD_RESULT: DEFAULT_EXPIRATION,
    ReportKind.DIVIDEND_SUMMARY: DEFAULT_EXPIRATION,
    ReportKind.DIVIDEND_METRICS: DEFAULT_EXPIRATION,
}


@dataclass
class _Entry:
    value: Any
    expires_at: Optional[float] # None = never


class ReportCache:
    """
    Per-user memoized report views keyed by (user_id, ReportKind).

    Expired entries are invisible to get() right away and removed by sweep(). Every get/set calls
    maybe_sweep(), so a sweep runs at most once per cleanup interval without a background thread.
    A miss is not guarded: concurrent callers may both recompute and both set.
    """
    def __init__(self,
                 default_expiration_seconds: float = config.REPORT_CACHE_DEFAULT_EXPIRATION_SECONDS,
                 cleanup_interval_seconds: float = config.REPORT_CACHE_CLEANUP_INTERVAL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.default_expiration_seconds = default_expiration_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock
        self._entries: Dict[Tuple[int, ReportKind], _Entry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expiry(self, ttl: float, now: float) -> Optional[float]:
        if ttl == NO_EXPIRATION:
            return None
        if ttl == DEFAULT_EXPIRATION:
            ttl = self.default_expiration_seconds
        return now + ttl

    def get(self, user_id: int, kind: ReportKind) -> Optional[Any]:
        self.maybe_sweep()
        with self._lock:
            entry = self._entries.get((user_id, kind))
            if entry is None:
                return None
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                return None
            return entry.value

    def set(self, user_id: int, kind: ReportKind, value: Any, ttl: Optional[float] = None) -> None:
        """ttl: NO_EXPIRATION, DEFAULT_EXPIRATION, seconds, or None for the kind's standard lifetime."""
        self.maybe_sweep()
        if ttl is None:
            ttl = KIND_LIFETIMES[kind]
        with self._lock:
            self._entries[(user_id, kind)] = _Entry(value, self._expiry(ttl, self._clock()))

    def invalidate_user(self, user_id: int) -> int:
        with self._lock:
            keys = [key for key in self._entries if key[0] == user_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Report cache: invalidated {len(keys)} entries of user {user_id}.")
        return len(keys)

    def sweep(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items()
                       if entry.expires_at is not None and now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
            self._last_sweep = now
        if expired:
            logger.debug(f"Report cache sweep removed {len(expired)} expired entries.")
        return len(expired)

    def maybe_sweep(self) -> bool:
        with self._lock:
            due = self._clock() - self._last_sweep >= self.cleanup_interval_seconds
        if due:
            self.sweep()
        return due

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
