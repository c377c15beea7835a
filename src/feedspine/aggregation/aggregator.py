"""Multi-source aggregation.

Fans one request out to several redundant sources and reduces whatever came
back to a single value.

Strategies:
    MEAN       average after outlier rejection; structured results become a
               synthetic record tagged ``source="AGGREGATED"``
    MEDIAN     middle value; for structured results the lower-middle record
    CONSENSUS  the most common result by canonical equality

Results are either numbers or records carrying a numeric ``value_field``
(``price`` by default) as a mapping key, a pydantic field or a dataclass
field. MEAN and MEDIAN fall back to CONSENSUS when the results are neither.

Example:
    >>> aggregator = MultiSourceAggregator([binance, coingecko, kraken])
    >>> await aggregator.aggregate({"symbol": "BTC"}, AggregationStrategy.MEDIAN)
    {'symbol': 'BTC', 'price': 67012.0, 'source': 'coingecko'}
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from feedspine.aggregation import stats
from feedspine.core.errors import (
    AggregationError,
    AllSourcesFailedError,
    FeedError,
    QuorumNotMetError,
    classify_error,
)
from feedspine.core.hashing import request_key
from feedspine.core.logging import LogContext, get_logger
from feedspine.execution.fetcher import ResilientFetcher

P = TypeVar("P")
T = TypeVar("T")

logger = get_logger(__name__)

AGGREGATED_SOURCE = "AGGREGATED"


class AggregationStrategy(str, Enum):
    """How successful results are combined."""

    MEAN = "MEAN"
    MEDIAN = "MEDIAN"
    CONSENSUS = "CONSENSUS"


@dataclass(frozen=True)
class AggregationResult(Generic[T]):
    """Aggregated value plus what went into it.

    Attributes:
        value: The combined result
        strategy: Strategy actually applied (MEAN/MEDIAN fall back to
            CONSENSUS for non-numeric results)
        sources: Sources that succeeded, in arrival order
        failures: Per-source errors for the sources that failed
        rejected: Sources whose values MEAN discarded as outliers
        confidence: Agreement score in ``[0, 1]``
    """

    value: T
    strategy: AggregationStrategy
    sources: tuple[str, ...]
    failures: dict[str, FeedError] = field(default_factory=dict)
    rejected: tuple[str, ...] = ()
    confidence: float = 1.0

    @property
    def degraded(self) -> bool:
        """True when at least one source failed."""
        return bool(self.failures)


class MultiSourceAggregator(Generic[P, T]):
    """Combine several fetchers for the same logical request.

    Args:
        fetchers: One fetcher per redundant source
        name: Name used in logs and errors
        primary: Fetcher used by :meth:`aggregate_or_primary` when the
            aggregation as a whole fails
        value_field: Numeric field of structured results
        min_sources: Successful sources required for a result
    """

    def __init__(
        self,
        fetchers: Sequence[ResilientFetcher[P, T]],
        *,
        name: str = "aggregate",
        primary: ResilientFetcher[P, T] | None = None,
        value_field: str = "price",
        min_sources: int = 1,
    ):
        if not fetchers:
            raise ValueError("MultiSourceAggregator needs at least one fetcher")
        if min_sources < 1:
            raise ValueError("min_sources must be >= 1")
        self.fetchers = list(fetchers)
        self.name = name
        self.primary = primary
        self.value_field = value_field
        self.min_sources = min_sources

    async def aggregate(
        self,
        params: P,
        strategy: AggregationStrategy = AggregationStrategy.MEDIAN,
    ) -> T:
        """Fetch from every source and combine the results.

        Raises:
            AllSourcesFailedError: If no source succeeded
            QuorumNotMetError: If fewer than ``min_sources`` succeeded
        """
        result = await self.aggregate_detailed(params, strategy)
        return result.value

    async def aggregate_detailed(
        self,
        params: P,
        strategy: AggregationStrategy = AggregationStrategy.MEDIAN,
    ) -> AggregationResult[T]:
        """Like :meth:`aggregate` but also report sources, failures and confidence."""
        with LogContext(aggregate=self.name):
            return await self._aggregate(params, AggregationStrategy(strategy))

    async def _aggregate(self, params: P, strategy: AggregationStrategy) -> AggregationResult[T]:
        successes, failures = await self._gather(params)

        if not successes:
            logger.error("aggregator.all_failed", sources=len(failures))
            raise AllSourcesFailedError(failures)
        if not stats.check_quorum(len(successes), self.min_sources):
            logger.warning(
                "aggregator.quorum_not_met",
                succeeded=len(successes),
                required=self.min_sources,
            )
            raise QuorumNotMetError(len(successes), self.min_sources, errors=failures)

        names = tuple(name for name, _ in successes)
        values = [value for _, value in successes]

        if len(values) == 1:
            result = AggregationResult(values[0], strategy, names, failures)
        elif strategy is AggregationStrategy.CONSENSUS:
            result = self._consensus(values, names, failures, strategy)
        else:
            numbers = self._numbers(values)
            if numbers is None:
                result = self._consensus(values, names, failures, AggregationStrategy.CONSENSUS)
            elif strategy is AggregationStrategy.MEAN:
                result = self._mean(values, numbers, names, failures)
            else:
                result = self._median(values, numbers, names, failures)

        logger.debug(
            "aggregator.complete",
            strategy=result.strategy.value,
            sources=len(names),
            failed=len(failures),
            rejected=len(result.rejected),
            confidence=round(result.confidence, 4),
        )
        return result

    async def aggregate_or_primary(
        self,
        params: P,
        strategy: AggregationStrategy = AggregationStrategy.MEDIAN,
    ) -> T:
        """Aggregate, falling back to the primary source if aggregation fails."""
        try:
            return await self.aggregate(params, strategy)
        except AggregationError as exc:
            if self.primary is None:
                raise
            logger.warning(
                "aggregator.fallback_primary",
                aggregate=self.name,
                primary=self.primary.name,
                reason=exc.message,
            )
            return await self.primary.get(params)

    async def _gather(self, params: P) -> tuple[list[tuple[str, T]], dict[str, FeedError]]:
        """Query every fetcher concurrently; successes are kept in arrival order."""

        async def _one(fetcher: ResilientFetcher[P, T]) -> tuple[str, Any, bool]:
            try:
                return fetcher.name, await fetcher.get(params), True
            except Exception as exc:
                return fetcher.name, classify_error(exc, fetcher.name), False

        successes: list[tuple[str, T]] = []
        failures: dict[str, FeedError] = {}
        for next_done in asyncio.as_completed([_one(f) for f in self.fetchers]):
            name, outcome, ok = await next_done
            if ok:
                successes.append((name, outcome))
            else:
                failures[name] = outcome
                logger.warning(
                    "aggregator.source_failed",
                    source=name,
                    error_type=outcome.__class__.__name__,
                    error=outcome.message,
                )
        return successes, failures

    def _numbers(self, values: list[T]) -> list[float] | None:
        """Numeric view of the results, or None if any result has no number."""
        numbers = []
        for value in values:
            number = _numeric(value, self.value_field)
            if number is None:
                return None
            numbers.append(number)
        return numbers

    def _mean(
        self,
        values: list[T],
        numbers: list[float],
        names: tuple[str, ...],
        failures: dict[str, FeedError],
    ) -> AggregationResult[T]:
        mask = stats.outlier_mask(numbers)
        kept = [n for n, rejected in zip(numbers, mask) if not rejected]
        rejected = tuple(name for name, r in zip(names, mask) if r)
        if rejected:
            logger.info("aggregator.outliers_rejected", sources=list(rejected))

        average = stats.mean(kept)
        return AggregationResult(
            value=_with_number(values[0], self.value_field, average),
            strategy=AggregationStrategy.MEAN,
            sources=names,
            failures=failures,
            rejected=rejected,
            confidence=stats.confidence(kept),
        )

    def _median(
        self,
        values: list[T],
        numbers: list[float],
        names: tuple[str, ...],
        failures: dict[str, FeedError],
    ) -> AggregationResult[T]:
        if _is_number(values[0]):
            value: Any = stats.median(numbers)
        else:
            # pick a representative record, never synthesize one
            order = sorted(range(len(values)), key=lambda i: numbers[i])
            value = values[order[(len(order) - 1) // 2]]
        return AggregationResult(
            value=value,
            strategy=AggregationStrategy.MEDIAN,
            sources=names,
            failures=failures,
            confidence=stats.confidence(numbers),
        )

    def _consensus(
        self,
        values: list[T],
        names: tuple[str, ...],
        failures: dict[str, FeedError],
        strategy: AggregationStrategy,
    ) -> AggregationResult[T]:
        # dicts keep insertion order, so max() breaks ties by first arrival
        groups: dict[str, list[int]] = {}
        for i, value in enumerate(values):
            groups.setdefault(request_key(value), []).append(i)
        winner = max(groups.values(), key=len)
        return AggregationResult(
            value=values[winner[0]],
            strategy=strategy,
            sources=names,
            failures=failures,
            confidence=len(winner) / len(values),
        )

    def __repr__(self) -> str:
        return f"MultiSourceAggregator({self.name!r}, sources={[f.name for f in self.fetchers]})"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric(value: Any, value_field: str) -> float | None:
    if _is_number(value):
        return float(value)
    if isinstance(value, Mapping):
        candidate = value.get(value_field)
    else:
        candidate = getattr(value, value_field, None)
    if _is_number(candidate):
        return float(candidate)
    return None


def _with_number(template: Any, value_field: str, number: float) -> Any:
    """Copy ``template`` with its numeric field replaced and tagged as aggregated."""
    if _is_number(template):
        return number
    if isinstance(template, Mapping):
        return {**template, value_field: number, "source": AGGREGATED_SOURCE}
    if isinstance(template, BaseModel):
        update: dict[str, Any] = {value_field: number}
        if "source" in type(template).model_fields:
            update["source"] = AGGREGATED_SOURCE
        return template.model_copy(update=update)
    if dataclasses.is_dataclass(template) and not isinstance(template, type):
        changes: dict[str, Any] = {value_field: number}
        if any(f.name == "source" for f in dataclasses.fields(template)):
            changes["source"] = AGGREGATED_SOURCE
        return dataclasses.replace(template, **changes)
    return number


__all__ = [
    "AGGREGATED_SOURCE",
    "AggregationResult",
    "AggregationStrategy",
    "MultiSourceAggregator",
]
