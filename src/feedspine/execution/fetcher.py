"""Resilient fetcher -- the per-source fetch pipeline.

Manifesto:
Every external source is slow sometimes, broken sometimes and rate-limited
always. ``ResilientFetcher`` wraps one :class:`~feedspine.sources.Source`
and answers ``get(params)`` through a fixed pipeline so callers never deal
with any of that themselves.

ARCHITECTURE
────────────
::

    get(params)
      1. request_key(params)
      2. cache hit?            ──► return (skips everything below)
      3. use_mocks?            ──► return source.mock(params)
      4. rate-limit backlog    ──► RateLimitBacklogError when the queue
                                   would outlast config.timeout
      5. same key in flight?   ──► await the shared task
      6. breaker.execute(
             retry(
                 rate_limited(
                     wait_for(source.fetch(params), config.timeout))))
      7. success               ──► cache, return
      8. failure               ──► sanitize, wrap as FeedError, raise

The cache, breaker, rate limiter and pending-request map belong to this
fetcher alone. None of the check-then-set sections contain an ``await``, so
on a single event loop callers cannot interleave inside them.

Example::

    fetcher = ResilientFetcher(
        FunctionSource("binance", fetch_price),
        SourceConfig(rate_per_minute=1200, cache_ttl=5.0),
    )
    price = await fetcher.get({"symbol": "BTC"})

Tags:
    feedspine, execution, cache, circuit-breaker, retry, dedupe
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from feedspine.core.cache import BoundedCache
from feedspine.core.errors import (
    FeedError,
    RateLimitBacklogError,
    TransientFeedError,
    classify_error,
    is_retryable,
)
from feedspine.core.hashing import compute_hash, request_key
from feedspine.core.logging import get_logger
from feedspine.core.sanitize import sanitize_message
from feedspine.core.settings import SourceConfig
from feedspine.execution.circuit_breaker import CircuitBreaker, CircuitSnapshot, CircuitState
from feedspine.execution.rate_limit import SpacingRateLimiter
from feedspine.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy
from feedspine.observability.hooks import FeedHooks
from feedspine.sources.base import Source

P = TypeVar("P")
T = TypeVar("T")

logger = get_logger(__name__)


class ResilientFetcher(Generic[P, T]):
    """Cached, coalesced, retried and circuit-broken access to one source.

    Args:
        source: The source to wrap
        config: Resilience settings for this source
        hooks: Instrumentation callbacks, emitted fire-and-forget
        retry: Retry strategy; defaults to exponential backoff built from
            ``config.max_retries`` and ``config.retry_base_delay``
        clock: Monotonic time source shared by cache, breaker and limiter
        sleep: Awaitable sleep used for backoff and rate-limit pacing
    """

    def __init__(
        self,
        source: Source[P, T],
        config: SourceConfig | None = None,
        *,
        hooks: FeedHooks | None = None,
        retry: RetryStrategy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.source = source
        self.config = config or SourceConfig()
        self.hooks = hooks or FeedHooks()
        self._sleep = sleep

        self._cache: BoundedCache[T] = BoundedCache(
            max_size=self.config.cache_max_size,
            default_ttl=self.config.cache_ttl,
            clock=clock,
        )
        self._breaker = CircuitBreaker(
            name=source.name,
            threshold=self.config.circuit_threshold,
            cooldown=self.config.circuit_cooldown,
            half_open_threshold=self.config.circuit_half_open_successes,
            clock=clock,
            on_state_change=self._on_circuit_state_change,
        )
        self._limiter: SpacingRateLimiter | None = None
        if self.config.rate_per_minute is not None:
            self._limiter = SpacingRateLimiter.per_minute(
                self.config.rate_per_minute, clock=clock, sleep=sleep
            )
        self._retry = retry or ExponentialBackoff(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            retryable=is_retryable,
        )
        self._pending: dict[str, asyncio.Task[T]] = {}

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def in_flight(self) -> int:
        """Number of distinct requests currently awaiting the upstream."""
        return len(self._pending)

    @property
    def cache(self) -> BoundedCache[T]:
        return self._cache

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def circuit_state(self) -> CircuitSnapshot:
        return self._breaker.state()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def get(self, params: P) -> T:
        """Fetch ``params`` from the source through the resilience pipeline.

        ``None`` results are returned but never cached.

        Raises:
            FeedError: On terminal failure. Messages are sanitized.
        """
        key = request_key(params)
        started = time.perf_counter()
        self.hooks.emit("on_request", self.name, key)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("fetcher.cache_hit", source=self.name, request=compute_hash(key, length=12))
            self.hooks.emit("on_cache_hit", self.name, key)
            self.hooks.emit("on_success", self.name, time.perf_counter() - started, True)
            return cached
        self.hooks.emit("on_cache_miss", self.name, key)

        try:
            if self.config.use_mocks:
                result = await self._get_mock(params, key)
            else:
                result = await self._get_upstream(params, key)
        except FeedError as error:
            self.hooks.emit("on_error", self.name, error, time.perf_counter() - started)
            raise

        self.hooks.emit("on_success", self.name, time.perf_counter() - started, False)
        return result

    async def _get_mock(self, params: P, key: str) -> T:
        try:
            return await self.source.mock(params)
        except Exception as exc:
            error = self._terminal_error(exc, key)
        # raised outside the handler so the raw exception is not chained
        raise error

    async def _get_upstream(self, params: P, key: str) -> T:
        if self._limiter is not None:
            wait = self._limiter.estimated_wait()
            if wait > self.config.timeout:
                logger.warning(
                    "fetcher.rate_limit_backlog",
                    source=self.name,
                    estimated_wait=round(wait, 3),
                    budget=self.config.timeout,
                )
                raise RateLimitBacklogError(self.name, estimated_wait=wait)

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(params, key))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task
        else:
            logger.debug("fetcher.coalesced", source=self.name, request=compute_hash(key, length=12))

        # waiters may be cancelled individually; the shared call keeps running
        return await asyncio.shield(task)

    async def _fetch(self, params: P, key: str) -> T:
        try:
            result = await self._breaker.execute(lambda: self._call_with_retry(params))
        except Exception as exc:
            error = self._terminal_error(exc, key)
        else:
            if result is not None:
                self._cache.set(key, result, ttl=self.config.cache_ttl)
            return result
        finally:
            self._pending.pop(key, None)
        raise error

    def _terminal_error(self, exc: Exception, key: str) -> FeedError:
        """Wrap, scrub and log a failure that is about to leave the fetcher."""
        error = classify_error(exc, self.name).sanitized()
        error.with_context(request_key=key)
        logger.warning(
            "fetcher.failed",
            source=self.name,
            request=compute_hash(key, length=12),
            error_type=error.__class__.__name__,
            error=error.message,
            status_code=error.status_code,
            retryable=error.retryable,
        )
        return error

    async def _call_with_retry(self, params: P) -> T:
        ctx = RetryContext(self._retry, on_retry=self._log_retry, sleep=self._sleep)
        try:
            return await ctx.run_async(self._attempt, params)
        except Exception as exc:
            error = classify_error(exc, self.name).with_context(attempts=ctx.attempts)
            if error is exc:
                raise
            raise error from exc

    async def _attempt(self, params: P) -> T:
        if self._limiter is not None:
            waited = await self._limiter.acquire()
            if waited > 0:
                self.hooks.emit("on_rate_limit_hit", self.name, waited)
        try:
            return await asyncio.wait_for(self.source.fetch(params), timeout=self.config.timeout)
        except TimeoutError as exc:
            raise TransientFeedError(
                f"Request timed out after {self.config.timeout}s",
                source=self.name,
                cause=exc,
            ) from exc

    def _log_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        logger.warning(
            "fetcher.retry",
            source=self.name,
            attempt=attempt,
            delay=delay,
            error=sanitize_message(str(error) or error.__class__.__name__),
        )

    def _on_circuit_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        self.hooks.emit("on_circuit_state_change", name, old, new)

    def __repr__(self) -> str:
        return f"ResilientFetcher({self.name!r}, state={self._breaker.state().state.value})"


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # waiters may all have been cancelled; mark the outcome as retrieved
    if not task.cancelled():
        task.exception()


__all__ = ["ResilientFetcher"]
