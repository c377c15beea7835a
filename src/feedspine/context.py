"""FeedContext -- an explicit registry of fetchers and aggregates.

There is no module-level state in feedspine. An application builds one
``FeedContext`` at startup, registers its sources and aggregates, and passes
the context to whatever needs data.

Example:
    >>> ctx = FeedContext.from_env()
    >>> ctx.register_source(FunctionSource("binance", binance_price))
    >>> ctx.register_source(FunctionSource("coingecko", coingecko_price))
    >>> ctx.register_aggregate("btc_usd", ["binance", "coingecko"], primary="binance")
    >>> await ctx.aggregate("btc_usd", {"symbol": "BTC"})
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from feedspine.aggregation.aggregator import AggregationStrategy, MultiSourceAggregator
from feedspine.core.errors import FeedConfigError
from feedspine.core.logging import configure_logging, get_logger
from feedspine.core.settings import FeedSettings, SourceConfig
from feedspine.execution.circuit_breaker import CircuitSnapshot
from feedspine.execution.fetcher import ResilientFetcher
from feedspine.observability.hooks import FeedHooks
from feedspine.sources.base import Source

logger = get_logger(__name__)


class FeedContext:
    """Owns every fetcher and aggregate of an application.

    Args:
        settings: Source defaults and per-source overrides
        hooks: Instrumentation hooks given to every fetcher
        clock: Monotonic time source given to every fetcher
        sleep: Awaitable sleep given to every fetcher
    """

    def __init__(
        self,
        settings: FeedSettings | None = None,
        *,
        hooks: FeedHooks | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or FeedSettings()
        self.hooks = hooks
        self._clock = clock
        self._sleep = sleep
        self._fetchers: dict[str, ResilientFetcher[Any, Any]] = {}
        self._aggregators: dict[str, MultiSourceAggregator[Any, Any]] = {}

    @classmethod
    def from_env(cls, *, hooks: FeedHooks | None = None) -> FeedContext:
        """Load ``FeedSettings`` from the environment and configure logging."""
        settings = FeedSettings()
        configure_logging(
            level="DEBUG" if settings.debug else settings.log_level,
            json_format=settings.json_logs,
        )
        return cls(settings, hooks=hooks)

    # ── Registration ─────────────────────────────────────────────

    def register_source(
        self, source: Source[Any, Any], config: SourceConfig | None = None
    ) -> ResilientFetcher[Any, Any]:
        """Wrap ``source`` in a fetcher. ``config`` overrides the settings."""
        if source.name in self._fetchers:
            raise FeedConfigError(f"Source {source.name!r} is already registered", source=source.name)
        fetcher = ResilientFetcher(
            source,
            config or self.settings.source_config(source.name),
            hooks=self.hooks,
            clock=self._clock,
            sleep=self._sleep,
        )
        self._fetchers[source.name] = fetcher
        logger.debug("context.source_registered", source=source.name)
        return fetcher

    def register_aggregate(
        self,
        name: str,
        sources: Sequence[str],
        *,
        primary: str | None = None,
        min_sources: int = 1,
        value_field: str = "price",
    ) -> MultiSourceAggregator[Any, Any]:
        """Combine already registered sources under ``name``."""
        if name in self._aggregators:
            raise FeedConfigError(f"Aggregate {name!r} is already registered", source=name)
        aggregator = MultiSourceAggregator(
            [self.fetcher(s) for s in sources],
            name=name,
            primary=self.fetcher(primary) if primary is not None else None,
            value_field=value_field,
            min_sources=min_sources,
        )
        self._aggregators[name] = aggregator
        logger.debug("context.aggregate_registered", aggregate=name, sources=list(sources))
        return aggregator

    # ── Lookup ───────────────────────────────────────────────────

    def fetcher(self, name: str) -> ResilientFetcher[Any, Any]:
        try:
            return self._fetchers[name]
        except KeyError:
            raise FeedConfigError(f"Unknown source {name!r}", source=name) from None

    def aggregator(self, name: str) -> MultiSourceAggregator[Any, Any]:
        try:
            return self._aggregators[name]
        except KeyError:
            raise FeedConfigError(f"Unknown aggregate {name!r}", source=name) from None

    @property
    def sources(self) -> list[str]:
        return list(self._fetchers)

    # ── Data ─────────────────────────────────────────────────────

    async def get(self, name: str, params: Any) -> Any:
        return await self.fetcher(name).get(params)

    async def aggregate(
        self,
        name: str,
        params: Any,
        strategy: AggregationStrategy = AggregationStrategy.MEDIAN,
    ) -> Any:
        """Aggregate ``name``, falling back to its primary source on failure."""
        return await self.aggregator(name).aggregate_or_primary(params, strategy)

    def circuit_states(self) -> dict[str, CircuitSnapshot]:
        return {name: fetcher.circuit_state() for name, fetcher in self._fetchers.items()}

    def clear_caches(self) -> None:
        for fetcher in self._fetchers.values():
            fetcher.clear_cache()


__all__ = ["FeedContext"]
