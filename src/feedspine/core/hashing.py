"""
Deterministic request keying and content hashing.

Provides the canonical identity of a parameter set (the *request key*) used
for response caching and in-flight request coalescing, and the canonical form
of a source result used for consensus grouping.

Manifesto:
    Two callers asking the same question must share one cache entry and one
    upstream call, no matter how they built their parameter dict:
    - **Order-independent:** ``{"a": 1, "b": 2}`` and ``{"b": 2, "a": 1}`` are one key
    - **Deep:** nested mappings are key-sorted too
    - **Order-preserving for sequences:** ``[1, 2]`` is not ``[2, 1]``
    - **Model-aware:** pydantic models and dataclasses key by their fields

Architecture:
    ::

        params ──► canonicalize() ──► json.dumps(sort_keys, compact) ──► request_key
                                                                      │
                                                   compute_hash() ◄───┘ (short digest)

Examples:
    >>> request_key({"symbol": "BTC", "opts": {"b": 2, "a": 1}})
    '{"opts":{"a":1,"b":2},"symbol":"BTC"}'
    >>> request_key({"opts": {"a": 1, "b": 2}, "symbol": "BTC"})
    '{"opts":{"a":1,"b":2},"symbol":"BTC"}'
    >>> len(compute_hash("a", "b"))
    32

Tags:
    hashing, deduplication, request-key, cache-key, feedspine

Doc-Types:
    - API Reference
"""

import dataclasses
import hashlib
import json
from collections.abc import Mapping, Set
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def canonicalize(value: Any) -> Any:
    """
    Convert a value into a JSON-ready structure with deterministic ordering.

    Mappings become dicts with string keys in sorted order, sequences become
    lists (order kept), sets become sorted lists, pydantic models and
    dataclasses are dumped to mappings first.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)

    if isinstance(value, Mapping):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, Set):
        return sorted((canonicalize(v) for v in value), key=_stable_dump)
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _stable_dump(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def request_key(params: Any) -> str:
    """
    Compute the canonical request key for a parameter object.

    ``request_key(a) == request_key(b)`` exactly when ``a`` and ``b`` are
    deep-equal after key sorting.
    """
    return _stable_dump(canonicalize(params))


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Concatenates string representations of all values with a ``|`` delimiter
    and returns a SHA-256 hex digest truncated to ``length``. Used to log a
    short, stable digest of a request key instead of the key itself, which
    may be long or carry caller data.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


__all__ = ["canonicalize", "request_key", "compute_hash"]
