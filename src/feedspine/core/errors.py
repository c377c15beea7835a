"""
Structured error types for the feedspine fetch pipeline.

Every failure that leaves a ``ResilientFetcher`` or a ``MultiSourceAggregator``
is a :class:`FeedError`. Raw errors raised by a source (``httpx`` exceptions,
timeouts, validation failures, arbitrary exceptions from adapter code) are
classified and wrapped by :func:`classify_error` before they surface.

Manifesto:
    - **Typed Error Hierarchy:** Callers branch on the error type, not on text
    - **Explicit Retry Semantics:** Every error knows if it's retryable
    - **Source Attribution:** Every error names the source that produced it
    - **Error Chaining:** The original exception is kept as ``cause`` until
      :meth:`FeedError.sanitized` swaps it for a scrubbed ``cause_summary``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          FeedError                               │
        │  (source, status_code, category, retryable, retry_after, cause) │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientFeedError    RateLimitBacklogError  FeedValidationError│
        │  (retryable=True)      (RATE_LIMIT)           (VALIDATION)       │
        │       │                                                          │
        │  CircuitOpenError      FeedConfigError        AggregationError   │
        │  (CIRCUIT, 503)        (CONFIG)               (AGGREGATION)      │
        │                                                    │             │
        │                                     AllSourcesFailedError        │
        │                                     QuorumNotMetError            │
        └─────────────────────────────────────────────────────────────────┘

Classification:
    ========================================  ==========
    Raised by source                          Retryable
    ========================================  ==========
    HTTP 408 / 429 / 500 / 502 / 503 / 504    yes
    any other HTTP status                     no
    httpx transport errors, timeouts, OSError yes
    pydantic ValidationError, ValueError      no
    anything else                             yes
    ========================================  ==========

Examples:
    >>> error = classify_error(ConnectionResetError("peer reset"), source="binance")
    >>> error.retryable
    True
    >>> error.source
    'binance'

Tags:
    error-handling, exception-hierarchy, retry-logic, feedspine

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
import pydantic

from feedspine.core.sanitize import sanitize_message, sanitize_url

#: HTTP status codes that indicate a transient upstream condition.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS, 5xx
    UPSTREAM = "UPSTREAM"         # Permanent upstream rejection (4xx)
    VALIDATION = "VALIDATION"     # Malformed or schema-violating payloads
    CIRCUIT = "CIRCUIT"           # Synthetic circuit-open rejection
    RATE_LIMIT = "RATE_LIMIT"     # Synthetic rate-limit backlog rejection
    AGGREGATION = "AGGREGATION"   # Multi-source exhaustion
    CONFIG = "CONFIG"             # Missing config, invalid settings
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a :class:`FeedError`.

    Only non-empty fields are serialized by :meth:`to_dict`, so the context
    can be dropped straight into a structlog event.
    """

    request_key: str | None = None
    url: str | None = None
    attempts: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-None fields for logging."""
        result: dict[str, Any] = {}
        if self.request_key is not None:
            result["request_key"] = self.request_key
        if self.url is not None:
            result["url"] = self.url
        if self.attempts is not None:
            result["attempts"] = self.attempts
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


class FeedError(Exception):
    """
    Base exception for every failure surfaced by the pipeline.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.

    Examples:
        >>> error = FeedError("HTTP 404", source="fred", status_code=404)
        >>> error.retryable
        False
        >>> error.to_dict()["status_code"]
        404
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        source: str = "unknown",
        status_code: int | None = None,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause
        # "<ExceptionType>: <scrubbed message>" once sanitized() drops the cause
        self.cause_summary: str | None = None

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FeedError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def sanitized(self) -> FeedError:
        """Scrub credentials from this error in place.

        The message and context URL are masked. The raw cause is replaced by
        a scrubbed ``cause_summary`` and the exception chain is cut, so
        tracebacks rendered from the returned error cannot echo a secret.
        """
        self.message = sanitize_message(self.message)
        self.args = (self.message, *self.args[1:])
        if self.context.url is not None:
            self.context.url = sanitize_url(self.context.url)
        if self.cause is not None:
            self.cause_summary = (
                f"{self.cause.__class__.__name__}: {sanitize_message(str(self.cause))}"
            )
            self.cause = None
        self.__cause__ = None
        self.__context__ = None
        self.__suppress_context__ = True
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            result["status_code"] = self.status_code
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = sanitize_message(str(self.cause))
        elif self.cause_summary is not None:
            result["cause"] = self.cause_summary
        return result

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.message!r}, source={self.source!r}, "
            f"category={self.category.value})"
        )


# =============================================================================
# PIPELINE ERRORS
# =============================================================================


class TransientFeedError(FeedError):
    """Temporary upstream failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class CircuitOpenError(TransientFeedError):
    """Raised when a source's circuit is open and rejecting calls."""

    default_category = ErrorCategory.CIRCUIT

    def __init__(self, source: str, *, retry_after: int, **kwargs: Any):
        kwargs.setdefault("status_code", 503)
        super().__init__(
            f"Circuit breaker OPEN for {source}. Service unavailable.",
            source=source,
            retry_after=retry_after,
            **kwargs,
        )


class RateLimitBacklogError(FeedError):
    """The rate-limit queue would outlast the caller's timeout budget."""

    default_category = ErrorCategory.RATE_LIMIT
    default_retryable = False

    def __init__(self, source: str, *, estimated_wait: float, **kwargs: Any):
        self.estimated_wait = estimated_wait
        super().__init__(
            f"[{source}] Rate limit backlog full. Try again later.",
            source=source,
            **kwargs,
        )


class FeedValidationError(FeedError):
    """Source payload failed validation. Never retryable."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class FeedConfigError(FeedError):
    """Pipeline misconfiguration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# AGGREGATION ERRORS
# =============================================================================


class AggregationError(FeedError):
    """Base for failures of a multi-source aggregation as a whole."""

    default_category = ErrorCategory.AGGREGATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        errors: dict[str, FeedError] | None = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("source", "AGGREGATED")
        super().__init__(message, **kwargs)
        self.errors = errors or {}

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = {name: err.message for name, err in self.errors.items()}
        return result


class AllSourcesFailedError(AggregationError):
    """Every source of an aggregation failed."""

    def __init__(self, errors: dict[str, FeedError], **kwargs: Any):
        super().__init__("All sources failed", errors=errors, **kwargs)


class QuorumNotMetError(AggregationError):
    """Fewer sources succeeded than the aggregator requires."""

    def __init__(
        self,
        succeeded: int,
        required: int,
        *,
        errors: dict[str, FeedError] | None = None,
        **kwargs: Any,
    ):
        self.succeeded = succeeded
        self.required = required
        super().__init__(
            f"Quorum not met: {succeeded} of {required} required sources succeeded",
            errors=errors,
            **kwargs,
        )


# =============================================================================
# CLASSIFICATION
# =============================================================================


def _status_code_of(error: BaseException) -> int | None:
    """Extract an HTTP status code from an exception, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def _url_of(error: BaseException) -> str | None:
    """Extract the request URL from an httpx exception."""
    if isinstance(error, (httpx.RequestError, httpx.HTTPStatusError)):
        try:
            return str(error.request.url)
        except RuntimeError:
            # httpx raises when the request was never attached
            return None
    return None


def is_retryable_status(status_code: int) -> bool:
    """Check whether an HTTP status code signals a transient condition."""
    return status_code in RETRYABLE_STATUS_CODES


def classify_error(error: BaseException, source: str) -> FeedError:
    """
    Classify a raw source error and wrap it as a :class:`FeedError`.

    ``FeedError`` instances pass through unchanged. The returned error chains
    the original as ``cause``; its message is not yet sanitized.
    """
    if isinstance(error, FeedError):
        return error

    status_code = _status_code_of(error)
    message = str(error) or error.__class__.__name__
    context = ErrorContext(url=_url_of(error))

    if status_code is not None:
        retryable = is_retryable_status(status_code)
        error_cls = TransientFeedError if retryable else FeedError
        return error_cls(
            f"HTTP {status_code}: {message}",
            source=source,
            status_code=status_code,
            category=ErrorCategory.NETWORK if retryable else ErrorCategory.UPSTREAM,
            retryable=retryable,
            context=context,
            cause=error,
        )

    if isinstance(error, (httpx.TransportError, TimeoutError, OSError)):
        return TransientFeedError(message, source=source, context=context, cause=error)

    if isinstance(error, (pydantic.ValidationError, ValueError, TypeError, KeyError)):
        return FeedValidationError(
            f"Malformed response: {message}",
            source=source,
            context=context,
            cause=error,
        )

    return TransientFeedError(
        message,
        source=source,
        category=ErrorCategory.UNKNOWN,
        context=context,
        cause=error,
    )


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable under the pipeline's classification."""
    if isinstance(error, FeedError):
        return error.retryable
    return classify_error(error, source="unknown").retryable


def get_retry_after(error: BaseException) -> int | None:
    """Get retry delay from error, if specified."""
    if isinstance(error, FeedError):
        return error.retry_after
    return None


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "ErrorCategory",
    "ErrorContext",
    "FeedError",
    "TransientFeedError",
    "CircuitOpenError",
    "RateLimitBacklogError",
    "FeedValidationError",
    "FeedConfigError",
    "AggregationError",
    "AllSourcesFailedError",
    "QuorumNotMetError",
    "classify_error",
    "is_retryable",
    "is_retryable_status",
    "get_retry_after",
]
