"""feedspine -- resilient fetching and aggregation for unreliable data feeds.

Wrap each upstream in a :class:`ResilientFetcher` (cache, request
coalescing, rate limiting, retry, circuit breaking) and combine redundant
upstreams with a :class:`MultiSourceAggregator`.
"""

from feedspine.aggregation import (
    AggregationResult,
    AggregationStrategy,
    MultiSourceAggregator,
)
from feedspine.context import FeedContext
from feedspine.core import (
    AggregationError,
    AllSourcesFailedError,
    BoundedCache,
    CircuitOpenError,
    FeedConfigError,
    FeedError,
    FeedSettings,
    FeedValidationError,
    QuorumNotMetError,
    RateLimitBacklogError,
    SourceConfig,
    TransientFeedError,
    configure_logging,
    request_key,
)
from feedspine.execution import CircuitBreaker, CircuitState, ResilientFetcher
from feedspine.observability import FeedHooks, FeedMetrics
from feedspine.sources import FunctionSource, HttpSource, Source

__version__ = "0.1.0"

__all__ = [
    "AggregationError",
    "AggregationResult",
    "AggregationStrategy",
    "AllSourcesFailedError",
    "BoundedCache",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "FeedConfigError",
    "FeedContext",
    "FeedError",
    "FeedHooks",
    "FeedMetrics",
    "FeedSettings",
    "FeedValidationError",
    "FunctionSource",
    "HttpSource",
    "MultiSourceAggregator",
    "QuorumNotMetError",
    "RateLimitBacklogError",
    "ResilientFetcher",
    "Source",
    "SourceConfig",
    "TransientFeedError",
    "configure_logging",
    "request_key",
]
