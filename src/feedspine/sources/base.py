"""Source protocol and the function-backed source.

A source is anything with a ``name``, an async ``fetch(params)`` and an async
``mock(params)``. The pipeline treats it as stateless: caching, retries and
circuit breaking all live in the ``ResilientFetcher`` that wraps it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import TypeAdapter, ValidationError

from feedspine.core.errors import FeedConfigError, FeedValidationError

P = TypeVar("P")
T = TypeVar("T")
P_contra = TypeVar("P_contra", contravariant=True)
T_co = TypeVar("T_co", covariant=True)


@runtime_checkable
class Source(Protocol[P_contra, T_co]):
    """An external data source."""

    name: str

    async def fetch(self, params: P_contra) -> T_co: ...

    async def mock(self, params: P_contra) -> T_co: ...


def parse_payload(schema: Any, payload: Any, source: str) -> Any:
    """Validate ``payload`` against ``schema``.

    ``schema`` is anything pydantic's ``TypeAdapter`` accepts: a model, a
    dataclass, a ``TypedDict`` or a plain type such as ``float``.

    Raises:
        FeedValidationError: If the payload does not match. Never retryable.
    """
    try:
        return TypeAdapter(schema).validate_python(payload)
    except ValidationError as exc:
        raise FeedValidationError(
            f"Malformed response: {exc.error_count()} validation error(s) for {schema!r}",
            source=source,
            cause=exc,
        ) from exc


class FunctionSource(Generic[P, T]):
    """Source backed by plain async callables.

    Example:
        >>> async def fetch_price(params):
        ...     return await exchange.ticker(params["symbol"])
        >>> source = FunctionSource("binance", fetch_price, schema=float)
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[P], Awaitable[Any]],
        mock: Callable[[P], Awaitable[T]] | None = None,
        schema: Any = None,
    ):
        self.name = name
        self._fetch = fetch
        self._mock = mock
        self._schema = schema

    async def fetch(self, params: P) -> T:
        payload = await self._fetch(params)
        if self._schema is None:
            return payload
        return parse_payload(self._schema, payload, self.name)

    async def mock(self, params: P) -> T:
        if self._mock is None:
            raise FeedConfigError(f"Source {self.name!r} has no mock data", source=self.name)
        return await self._mock(params)

    def __repr__(self) -> str:
        return f"FunctionSource({self.name!r})"


__all__ = ["FunctionSource", "Source", "parse_payload"]
