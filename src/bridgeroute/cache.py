"""Keyed cache with single-flight request coalescing.

This is the only shared mutable state in the engine. Every source adapter
receives the same ``CacheCoalescer`` instance; concurrent requests for one key
share a single upstream call.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from bridgeroute.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheHit(Generic[T]):
    """Value returned by ``CacheCoalescer.get``."""

    value: T
    from_cache: bool
    age_ms: int
    stale: bool = False
    error: Optional[BaseException] = None


@dataclass
class _Entry:
    value: Any
    fetched_at: float
    expires_at: float
    stale: bool = False


class CacheCoalescer:
    """Cache keyed values with TTL-on-success and shorter TTL-on-failure.

    Guarantees at most one in-flight ``fetch_fn`` per key. The fetch runs as a
    task owned by the coalescer, so a caller that is cancelled or times out
    does not cancel the shared fetch; it still completes and populates the
    cache for everyone else.

    Example:
        cache = CacheCoalescer()
        hit = await cache.get("price:binance", fetch_board, 10.0, 5.0)
        board = hit.value
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    async def get(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        success_ttl: float,
        failure_ttl: float,
    ) -> CacheHit[T]:
        """Return the cached value for ``key`` or fetch it once for all callers.

        Args:
            key: Cache key
            fetch_fn: Coroutine function performing the upstream call
            success_ttl: Seconds a successful fetch stays fresh
            failure_ttl: Seconds a previous value is re-served after a failed fetch

        Raises:
            UpstreamUnavailable: The fetch failed and no previous value exists
        """
        async with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and now < entry.expires_at:
                return CacheHit(
                    value=entry.value,
                    from_cache=True,
                    age_ms=self._age_ms(entry, now),
                    stale=entry.stale,
                )

            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run(key, fetch_fn, success_ttl, failure_ttl))
                task.add_done_callback(_consume_exception)
                self._inflight[key] = task
                logger.debug(f"Cache miss for {key}, fetching upstream")
            else:
                logger.debug(f"Joining in-flight fetch for {key}")

        return await asyncio.shield(task)

    async def _run(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        success_ttl: float,
        failure_ttl: float,
    ) -> CacheHit[T]:
        try:
            try:
                value = await fetch_fn()
            except Exception as e:
                return await self._on_failure(key, e, failure_ttl)

            async with self._lock:
                now = self._clock()
                self._entries[key] = _Entry(value=value, fetched_at=now, expires_at=now + success_ttl)
            return CacheHit(value=value, from_cache=False, age_ms=0)
        finally:
            async with self._lock:
                if self._inflight.get(key) is asyncio.current_task():
                    del self._inflight[key]

    async def _on_failure(self, key: str, error: Exception, failure_ttl: float) -> CacheHit:
        async with self._lock:
            previous = self._entries.get(key)
            now = self._clock()
            if previous is None:
                logger.warning(f"Fetch for {key} failed with nothing cached: {error}")
                raise UpstreamUnavailable(key, str(error)) from error

            previous.expires_at = now + failure_ttl
            previous.stale = True
            age_ms = self._age_ms(previous, now)

        logger.warning(f"Fetch for {key} failed, serving stale value ({age_ms}ms old): {error}")
        return CacheHit(value=previous.value, from_cache=True, age_ms=age_ms, stale=True, error=error)

    def peek(self, key: str) -> Optional[CacheHit]:
        """Return the cached entry for ``key`` regardless of expiry, without fetching."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        return CacheHit(
            value=entry.value,
            from_cache=True,
            age_ms=self._age_ms(entry, now),
            stale=entry.stale or now >= entry.expires_at,
        )

    def invalidate(self, prefix: Optional[str] = None) -> int:
        """Drop cached entries (all, or those whose key starts with ``prefix``).

        In-flight fetches are left alone and will repopulate their keys.
        """
        keys = [k for k in self._entries if prefix is None or k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries (prefix={prefix!r})")
        return len(keys)

    def clear(self) -> None:
        """Drop every cached entry (useful for testing)."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _age_ms(entry: _Entry, now: float) -> int:
        return max(0, int((now - entry.fetched_at) * 1000))


def _consume_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; retrieve the exception so asyncio
    # does not log it as never retrieved.
    if not task.cancelled():
        task.exception()
