"""Feedspine observability -- instrumentation hooks and a metrics collector."""

from feedspine.observability.hooks import FeedHooks
from feedspine.observability.metrics import FeedMetrics, LatencySummary, SourceStats

__all__ = ["FeedHooks", "FeedMetrics", "LatencySummary", "SourceStats"]
