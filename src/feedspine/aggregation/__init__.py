"""Feedspine aggregation -- combining redundant sources."""

from feedspine.aggregation.aggregator import (
    AGGREGATED_SOURCE,
    AggregationResult,
    AggregationStrategy,
    MultiSourceAggregator,
)

__all__ = [
    "AGGREGATED_SOURCE",
    "AggregationResult",
    "AggregationStrategy",
    "MultiSourceAggregator",
]
