"""Fixed-window rate limiting for drop endpoints."""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any, Final, Protocol

import redis

from tagdrop.core.settings import settings

logger = logging.getLogger(__name__)

_UNKNOWN_IDENTIFIER: Final[str] = "unknown"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RateLimiter(Protocol):
    """Interface shared by every rate-limit backend."""

    def consume(
        self, scope: str, raw_identifier: str, max_in_window: int, window_ms: int
    ) -> bool: ...

    def prune(self) -> int: ...


@dataclass
class RateBucket:
    """Requests counted in the current window for one key."""

    count: int
    reset_at_ms: int


class _IdentifierHasher:
    """Keys buckets by HMAC so raw IPs and tokens never sit in memory or Redis."""

    def __init__(self, secret: str) -> None:
        self._secret = secret.encode("utf-8")

    def key(self, scope: str, raw_identifier: str) -> str:
        digest = hmac.new(
            self._secret,
            (raw_identifier or _UNKNOWN_IDENTIFIER).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"{scope}:{digest}"


class MemoryRateLimiter(_IdentifierHasher):
    """Process-local fixed-window counters.

    Windows reset lazily on the next access after they elapse; :meth:`prune`
    only bounds memory and never changes an outcome.
    """

    def __init__(self, secret: str, clock_ms: Callable[[], int] = _now_ms) -> None:
        super().__init__(secret)
        self._clock_ms = clock_ms
        self._buckets: dict[str, RateBucket] = {}
        self._lock = Lock()

    def consume(
        self, scope: str, raw_identifier: str, max_in_window: int, window_ms: int
    ) -> bool:
        """Count one request against ``scope``/``raw_identifier``; return False when over."""
        key = self.key(scope, raw_identifier)
        now = self._clock_ms()

        with self._lock:
            current = self._buckets.get(key)
            if current is None or current.reset_at_ms <= now:
                self._buckets[key] = RateBucket(count=1, reset_at_ms=now + window_ms)
                return True

            if current.count >= max_in_window:
                return False

            current.count += 1
            return True

    def prune(self) -> int:
        """Drop buckets whose window has elapsed and return how many were removed."""
        now = self._clock_ms()
        with self._lock:
            stale = [key for key, bucket in self._buckets.items() if bucket.reset_at_ms <= now]
            for key in stale:
                del self._buckets[key]
        return len(stale)

    def reset(self) -> None:
        """Forget every bucket."""
        with self._lock:
            self._buckets.clear()

    def __len__(self) -> int:
        return len(self._buckets)


class RedisRateLimiter(_IdentifierHasher):
    """Fixed-window counters shared across processes through Redis.

    The first hit of a window creates the key and sets its expiry, so the key
    TTL plays the role of ``reset_at``. Calls block on network I/O; async
    callers run them on a worker thread.
    """

    def __init__(self, secret: str, client: Any) -> None:
        super().__init__(secret)
        self._redis = client

    def consume(
        self, scope: str, raw_identifier: str, max_in_window: int, window_ms: int
    ) -> bool:
        """Count one request in Redis; return False when the window is exhausted."""
        key = f"droprl:{self.key(scope, raw_identifier)}"
        pipe = self._redis.pipeline()
        pipe.incr(key)
        # NX only sets an expiry on keys that have none: the first hit of a
        # window, or a key left without TTL by an earlier failure.
        pipe.pexpire(key, int(window_ms), nx=True)
        count, _ = pipe.execute()
        return int(count) <= max_in_window

    def prune(self) -> int:
        """Redis expires keys on its own."""
        return 0


_memory_limiter: MemoryRateLimiter | None = None
_redis_limiter: RedisRateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter for the configured backend."""
    global _memory_limiter, _redis_limiter

    if settings.drop_rate_limit_backend == "redis":
        if _redis_limiter is None:
            client = redis.from_url(settings.redis_url)  # type: ignore[no-untyped-call]
            _redis_limiter = RedisRateLimiter(settings.rate_limit_secret, client)
            logger.info("Drop rate limiting backed by Redis")
        return _redis_limiter

    if _memory_limiter is None:
        _memory_limiter = MemoryRateLimiter(settings.rate_limit_secret)
    return _memory_limiter
