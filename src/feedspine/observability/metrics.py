"""In-process metrics collector for fetchers.

``FeedMetrics`` counts hook events per source and keeps latency samples so a
process can answer "how is binance doing?" without an external backend.
Wire it into fetchers through :meth:`FeedMetrics.hooks`.

Example:
    >>> metrics = FeedMetrics()
    >>> fetcher = ResilientFetcher(source, hooks=metrics.hooks())
    >>> await fetcher.get({"symbol": "BTC"})
    >>> metrics.stats("binance").cache_hit_rate
    0.0
"""

from __future__ import annotations

from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from typing import Any

from feedspine.observability.hooks import FeedHooks

EVENTS = (
    "requests",
    "successes",
    "errors",
    "cache_hits",
    "cache_misses",
    "rate_limit_hits",
    "circuit_state_changes",
)


@dataclass(frozen=True)
class LatencySummary:
    """Latency percentiles in seconds (nearest-rank)."""

    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True)
class SourceStats:
    """Snapshot of one source's counters."""

    source: str
    requests: int
    successes: int
    errors: int
    cache_hits: int
    cache_misses: int
    rate_limit_hits: int
    circuit_state_changes: int
    latency: LatencySummary

    @property
    def error_rate(self) -> float:
        """Errors as a percentage of requests."""
        return (self.errors / self.requests) * 100 if self.requests else 0.0

    @property
    def cache_hit_rate(self) -> float:
        """Cache hits as a percentage of cache lookups."""
        lookups = self.cache_hits + self.cache_misses
        return (self.cache_hits / lookups) * 100 if lookups else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "requests": self.requests,
            "successes": self.successes,
            "errors": self.errors,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "rate_limit_hits": self.rate_limit_hits,
            "circuit_state_changes": self.circuit_state_changes,
            "error_rate": self.error_rate,
            "cache_hit_rate": self.cache_hit_rate,
            "latency": {
                "p50": self.latency.p50,
                "p95": self.latency.p95,
                "p99": self.latency.p99,
            },
        }


def _percentile(ordered: list[float], fraction: float) -> float:
    if not ordered:
        return 0.0
    index = min(int(len(ordered) * fraction), len(ordered) - 1)
    return ordered[index]


class FeedMetrics:
    """Counters and latency samples keyed by source name.

    Latencies are recorded for upstream successes only; cache hits would
    otherwise drag every percentile towards zero.
    """

    def __init__(self, max_samples: int = 10_000):
        self.max_samples = max_samples
        self._counts: dict[str, Counter[str]] = defaultdict(Counter)
        self._latencies: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=max_samples))

    def record(self, source: str, event: str, value: float | None = None) -> None:
        """Count ``event`` for ``source``; ``value`` is a latency sample."""
        if event not in EVENTS:
            raise ValueError(f"Unknown metric event: {event!r}")
        self._counts[source][event] += 1
        if value is not None:
            self._latencies[source].append(value)

    def hooks(self) -> FeedHooks:
        """Hooks that feed this collector."""

        def on_success(source: str, duration: float, cached: bool) -> None:
            self.record(source, "successes", None if cached else duration)

        return FeedHooks(
            on_request=lambda source, key: self.record(source, "requests"),
            on_success=on_success,
            on_error=lambda source, error, duration: self.record(source, "errors"),
            on_cache_hit=lambda source, key: self.record(source, "cache_hits"),
            on_cache_miss=lambda source, key: self.record(source, "cache_misses"),
            on_circuit_state_change=lambda source, old, new: self.record(source, "circuit_state_changes"),
            on_rate_limit_hit=lambda source, wait: self.record(source, "rate_limit_hits"),
        )

    def sources(self) -> list[str]:
        return sorted(self._counts)

    def stats(self, source: str) -> SourceStats:
        counts = self._counts.get(source, Counter())
        ordered = sorted(self._latencies.get(source, []))
        return SourceStats(
            source=source,
            latency=LatencySummary(
                p50=_percentile(ordered, 0.50),
                p95=_percentile(ordered, 0.95),
                p99=_percentile(ordered, 0.99),
            ),
            **{event: counts[event] for event in EVENTS},
        )

    def summary(self) -> list[SourceStats]:
        """Stats for every source seen so far."""
        return [self.stats(source) for source in self.sources()]

    def collect(self) -> list[dict[str, Any]]:
        """Flatten counters into exporter-friendly samples."""
        samples = []
        for source in self.sources():
            for event in EVENTS:
                samples.append({
                    "name": f"feeds_{event}_total",
                    "labels": {"source": source},
                    "value": self._counts[source][event],
                })
        return samples

    def reset(self) -> None:
        self._counts.clear()
        self._latencies.clear()


__all__ = ["FeedMetrics", "LatencySummary", "SourceStats"]
