"""Feedspine execution -- the resilience layer around each source.

Architecture::

    circuit_breaker.py   CircuitBreaker (CLOSED / OPEN / HALF_OPEN)
    retry.py             ExponentialBackoff + RetryContext
    rate_limit.py        SpacingRateLimiter (N calls per minute)
    fetcher.py           ResilientFetcher (cache → dedupe → breaker → retry)
"""

from feedspine.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitSnapshot,
    CircuitState,
    CircuitStats,
)
from feedspine.execution.fetcher import ResilientFetcher
from feedspine.execution.rate_limit import SpacingRateLimiter
from feedspine.execution.retry import (
    ExponentialBackoff,
    NoRetry,
    RetryContext,
    RetryStrategy,
)

__all__ = [
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "CircuitStats",
    "ExponentialBackoff",
    "NoRetry",
    "ResilientFetcher",
    "RetryContext",
    "RetryStrategy",
    "SpacingRateLimiter",
]
