"""
Per-key request counting inside a fixed time window.

`InMemoryRateLimiter` keeps its counters in this process only: they are lost
on restart and every worker counts separately. Set
``OTP_RATE_LIMITER_BACKEND = "cache"`` to keep the counters in the Django
cache instead (point CACHES at Redis/Memcached for a multi-worker deployment).
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from threading import Lock
from typing import Dict, Optional

from django.core.cache import cache
from django.utils import timezone

from . import conf
from .utils import send_otp_rate_limit_key

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = timedelta(minutes=5)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining_attempts: int
    reset_time: Optional[datetime] = None


@dataclass
class _Entry:
    count: int
    reset_time: datetime


class InMemoryRateLimiter:
    def __init__(self, limit: int, window: timedelta):
        self.limit = limit
        self.window = window
        self._store: Dict[str, _Entry] = {}
        self._lock = Lock()
        self._last_cleanup = timezone.now()

    def check(self, key: str) -> RateLimitResult:
        now = timezone.now()
        with self._lock:
            if now - self._last_cleanup > CLEANUP_INTERVAL:
                self._cleanup(now)

            entry = self._store.get(key)
            if entry is None or now > entry.reset_time:
                self._store[key] = _Entry(count=1, reset_time=now + self.window)
                return RateLimitResult(True, self.limit - 1)

            if entry.count >= self.limit:
                return RateLimitResult(False, 0, entry.reset_time)

            entry.count += 1
            return RateLimitResult(True, self.limit - entry.count)

    def get_remaining_time(self, key: str) -> timedelta:
        with self._lock:
            entry = self._store.get(key)
        if entry is None:
            return timedelta(0)
        return max(timedelta(0), entry.reset_time - timezone.now())

    def cleanup(self) -> int:
        with self._lock:
            return self._cleanup(timezone.now())

    def _cleanup(self, now) -> int:
        expired = [key for key, entry in self._store.items() if now > entry.reset_time]
        for key in expired:
            del self._store[key]
        self._last_cleanup = now
        return len(expired)

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._store.clear()
            else:
                self._store.pop(key, None)


class CacheRateLimiter:
    """Same contract as InMemoryRateLimiter, counters kept in the Django cache.

    The window exists while the ``:reset`` marker does; both keys are created
    with ``cache.add`` so concurrent callers never restart a running count.
    """

    prefix = "ratelimit:"

    def __init__(self, limit: int, window: timedelta):
        self.limit = limit
        self.window = window
        self._keys = set()

    def _cache_key(self, key):
        return f"{self.prefix}{key}"

    def _open_window(self, cache_key, now) -> datetime:
        timeout = max(1, math.ceil(self.window.total_seconds()))
        cache.add(f"{cache_key}:count", 0, timeout=timeout)
        cache.add(f"{cache_key}:reset", (now + self.window).timestamp(), timeout=timeout)
        reset_ts = cache.get(f"{cache_key}:reset")
        if reset_ts is None:
            return now + self.window
        return datetime.fromtimestamp(reset_ts, tz=dt_timezone.utc)

    def _increment(self, cache_key, reset_time, now) -> int:
        count_key = f"{cache_key}:count"
        try:
            return cache.incr(count_key)
        except ValueError:
            # counter evicted while the window marker survived
            timeout = max(1, math.ceil((reset_time - now).total_seconds()))
            cache.add(count_key, 0, timeout=timeout)
            return cache.incr(count_key)

    def check(self, key: str) -> RateLimitResult:
        now = timezone.now()
        cache_key = self._cache_key(key)
        self._keys.add(key)

        reset_time = self._open_window(cache_key, now)
        count = self._increment(cache_key, reset_time, now)
        if count > self.limit:
            return RateLimitResult(False, 0, reset_time)
        return RateLimitResult(True, self.limit - count)

    def get_remaining_time(self, key: str) -> timedelta:
        reset_ts = cache.get(f"{self._cache_key(key)}:reset")
        if not reset_ts:
            return timedelta(0)
        reset_time = datetime.fromtimestamp(reset_ts, tz=dt_timezone.utc)
        return max(timedelta(0), reset_time - timezone.now())

    def cleanup(self) -> int:
        # entries expire through the cache timeout
        return 0

    def reset(self, key: Optional[str] = None):
        """Drop the counters of one key, or of every key this limiter has seen."""
        keys = list(self._keys) if key is None else [key]
        cache.delete_many(
            [f"{self._cache_key(k)}:{suffix}" for k in keys for suffix in ("reset", "count")]
        )
        self._keys.difference_update(keys)


BACKENDS = {
    "memory": InMemoryRateLimiter,
    "cache": CacheRateLimiter,
}

_otp_rate_limiter = None
_otp_rate_limiter_lock = Lock()


def get_otp_rate_limiter():
    global _otp_rate_limiter

    if _otp_rate_limiter is None:
        with _otp_rate_limiter_lock:
            if _otp_rate_limiter is None:
                backend = conf.otp_rate_limiter_backend()
                if backend not in BACKENDS:
                    raise ValueError(f"Unknown OTP_RATE_LIMITER_BACKEND: {backend!r}")
                logger.info("Using %s rate limiter for OTP sends", backend)
                _otp_rate_limiter = BACKENDS[backend](conf.otp_send_limit(), conf.otp_send_window())
    return _otp_rate_limiter


def reset_otp_rate_limiter():
    """Forget the process-wide limiter so the next call rebuilds it from settings."""
    global _otp_rate_limiter

    with _otp_rate_limiter_lock:
        _otp_rate_limiter = None


def check_send_otp_rate_limit(email: str) -> RateLimitResult:
    return get_otp_rate_limiter().check(send_otp_rate_limit_key(email))
