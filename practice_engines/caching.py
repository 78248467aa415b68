"""Time-bounded cache for derived analytics payloads."""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol

import db
from env_validation import get_env_float
from practice_engines.base import Clock, system_clock

DEFAULT_TTL = timedelta(hours=1)


def ttl_from_env() -> timedelta:
    seconds = get_env_float("ANALYTICS_CACHE_TTL_SECONDS", DEFAULT_TTL.total_seconds())
    if seconds <= 0:
        return DEFAULT_TTL
    return timedelta(seconds=seconds)


def is_fresh(cached_at: datetime, now: datetime, ttl: timedelta) -> bool:
    return now - cached_at < ttl


class AnalyticsCache(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, payload: Dict[str, Any]) -> None:
        ...

    def invalidate(self, key: str) -> None:
        ...


class StoredAnalyticsCache:
    """Analytics cache persisted in the practice store, keyed by user id."""

    def __init__(self, ttl: Optional[timedelta] = None, *, clock: Optional[Clock] = None):
        self._ttl = ttl or ttl_from_env()
        self._clock = clock or system_clock

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        cached = db.load_cached_analytics(key)
        if cached is None:
            return None
        payload, cached_at = cached
        if not is_fresh(cached_at, self._clock(), self._ttl):
            return None
        return payload

    def set(self, key: str, payload: Dict[str, Any]) -> None:
        db.save_cached_analytics(key, payload, self._clock())

    def invalidate(self, key: str) -> None:
        db.clear_cached_analytics(key)
