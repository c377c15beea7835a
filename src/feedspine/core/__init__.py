"""Feedspine Core -- domain-agnostic primitives for the fetch pipeline.

Architecture::

    errors.py      FeedError hierarchy + classify_error
    sanitize.py    Credential scrubbing for messages and URLs
    hashing.py     Canonical request keys + content hashes
    cache.py       BoundedCache (TTL + LRU)
    settings.py    SourceConfig / FeedSettings (pydantic-settings)
    logging.py     structlog configuration
"""

from feedspine.core.cache import BoundedCache, CacheEntry, CacheStats
from feedspine.core.errors import (
    AggregationError,
    AllSourcesFailedError,
    CircuitOpenError,
    ErrorCategory,
    ErrorContext,
    FeedConfigError,
    FeedError,
    FeedValidationError,
    QuorumNotMetError,
    RateLimitBacklogError,
    TransientFeedError,
    classify_error,
    get_retry_after,
    is_retryable,
)
from feedspine.core.hashing import canonicalize, compute_hash, request_key
from feedspine.core.logging import LogContext, configure_logging, get_logger
from feedspine.core.sanitize import sanitize_message, sanitize_url
from feedspine.core.settings import FeedSettings, SourceConfig

__all__ = [
    # cache
    "BoundedCache",
    "CacheEntry",
    "CacheStats",
    # errors
    "AggregationError",
    "AllSourcesFailedError",
    "CircuitOpenError",
    "ErrorCategory",
    "ErrorContext",
    "FeedConfigError",
    "FeedError",
    "FeedValidationError",
    "QuorumNotMetError",
    "RateLimitBacklogError",
    "TransientFeedError",
    "classify_error",
    "get_retry_after",
    "is_retryable",
    # hashing
    "canonicalize",
    "compute_hash",
    "request_key",
    # logging
    "LogContext",
    "configure_logging",
    "get_logger",
    # sanitize
    "sanitize_message",
    "sanitize_url",
    # settings
    "FeedSettings",
    "SourceConfig",
]
