"""Instrumentation hooks for fetchers and circuit breakers.

Hooks are informational only. Every event is emitted fire-and-forget:
a hook that raises is logged and dropped, a hook that returns an awaitable
is scheduled on the running loop and never awaited by the pipeline.

Example:
    >>> hooks = FeedHooks(
    ...     on_success=lambda source, duration, cached: statsd.timing(
    ...         "feeds.latency", duration, tags=[f"source:{source}"]
    ...     ),
    ...     on_error=lambda source, error, duration: statsd.increment("feeds.error"),
    ... )
    >>> fetcher = ResilientFetcher(source, hooks=hooks)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, fields
from typing import Any

from feedspine.core.logging import get_logger

logger = get_logger(__name__)

HookFn = Callable[..., Any]

# Keep scheduled hook coroutines alive until they finish.
_background_tasks: set[asyncio.Task[Any]] = set()


@dataclass
class FeedHooks:
    """Optional observability callbacks.

    Signatures (``source`` is the source name):

    - ``on_request(source, request_key)``
    - ``on_success(source, duration_seconds, cached)``
    - ``on_error(source, error, duration_seconds)``
    - ``on_cache_hit(source, request_key)``
    - ``on_cache_miss(source, request_key)``
    - ``on_circuit_state_change(source, old_state, new_state)``
    - ``on_rate_limit_hit(source, wait_seconds)``
    """

    on_request: HookFn | None = None
    on_success: HookFn | None = None
    on_error: HookFn | None = None
    on_cache_hit: HookFn | None = None
    on_cache_miss: HookFn | None = None
    on_circuit_state_change: HookFn | None = None
    on_rate_limit_hit: HookFn | None = None

    def emit(self, event: str, *args: Any) -> None:
        """Invoke hook ``event`` with ``args`` without affecting the caller."""
        hook = getattr(self, event, None)
        if hook is None:
            return
        try:
            result = hook(*args)
        except Exception as exc:
            logger.warning("hooks.callback_failed", hook=event, error=str(exc))
            return
        if inspect.isawaitable(result):
            _schedule(event, result)

    @classmethod
    def combine(cls, *hooks: FeedHooks | None) -> FeedHooks:
        """Fan every event out to several hook sets."""
        present = [h for h in hooks if h is not None]

        def _fan_out(event: str) -> HookFn | None:
            if not any(getattr(h, event) is not None for h in present):
                return None

            def _call(*args: Any) -> None:
                for h in present:
                    h.emit(event, *args)

            return _call

        return cls(**{f.name: _fan_out(f.name) for f in fields(cls)})


def _schedule(event: str, awaitable: Any) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # close the coroutine so it is not reported as never awaited
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        logger.warning("hooks.no_event_loop", hook=event)
        return
    task = asyncio.ensure_future(awaitable, loop=loop)
    _background_tasks.add(task)
    task.add_done_callback(lambda t: _on_hook_done(event, t))


def _on_hook_done(event: str, task: asyncio.Task[Any]) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("hooks.callback_failed", hook=event, error=str(exc))


__all__ = ["FeedHooks", "HookFn"]
