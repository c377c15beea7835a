"""Generic JSON-over-HTTP source.

Covers the common vendor shape: ``GET`` a URL with query parameters, read a
JSON body, pull one value out of it. Anything more involved belongs in a
``FunctionSource`` written against the vendor's client.

Example:
    >>> source = HttpSource(
    ...     "coingecko",
    ...     "https://api.coingecko.com/api/v3/simple/price",
    ...     params={"vs_currencies": "usd"},
    ...     extract=lambda body, params: body[params["ids"]]["usd"],
    ...     schema=float,
    ... )
    >>> fetcher = ResilientFetcher(source, SourceConfig(rate_per_minute=30))
    >>> await fetcher.get({"ids": "bitcoin"})
    67012.0
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from feedspine.core.errors import FeedConfigError
from feedspine.sources.base import parse_payload

Extractor = Callable[[Any, Any], Any]


class HttpSource:
    """Source that ``GET``s a JSON document.

    Args:
        name: Source name
        url: Endpoint URL; ``{field}`` placeholders are filled from mapping params
        params: Static query parameters sent with every request
        headers: Static request headers
        schema: Optional pydantic-compatible type the extracted value must match
        extract: ``extract(body, params)`` picks the value out of the JSON body
        client: Shared ``httpx.AsyncClient``; a short-lived one is opened per
            request when omitted
        mock: Async callable producing mock data for ``use_mocks`` mode
        timeout: Transport timeout for the short-lived client
    """

    def __init__(
        self,
        name: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        schema: Any = None,
        extract: Extractor | None = None,
        client: httpx.AsyncClient | None = None,
        mock: Callable[[Any], Awaitable[Any]] | None = None,
        timeout: float = 10.0,
    ):
        self.name = name
        self.url = url
        self.params = dict(params or {})
        self.headers = dict(headers or {})
        self.schema = schema
        self.extract = extract
        self.timeout = timeout
        self._client = client
        self._mock = mock

    def build_request(self, params: Any) -> tuple[str, dict[str, Any]]:
        """Resolve the URL and query string for one call."""
        if params is None:
            return self.url, dict(self.params)
        if not isinstance(params, Mapping):
            raise FeedConfigError(
                f"HttpSource {self.name!r} expects mapping params, got {type(params).__name__}",
                source=self.name,
            )
        try:
            url = self.url.format(**params)
        except KeyError as exc:
            raise FeedConfigError(
                f"HttpSource {self.name!r} is missing URL parameter {exc}",
                source=self.name,
            ) from exc
        query = {**self.params, **{k: v for k, v in params.items() if "{" + k + "}" not in self.url}}
        return url, query

    async def fetch(self, params: Any) -> Any:
        url, query = self.build_request(params)
        if self._client is not None:
            response = await self._client.get(url, params=query, headers=self.headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=query, headers=self.headers)
        response.raise_for_status()

        body = response.json()
        value = self.extract(body, params) if self.extract is not None else body
        if self.schema is None:
            return value
        return parse_payload(self.schema, value, self.name)

    async def mock(self, params: Any) -> Any:
        if self._mock is None:
            raise FeedConfigError(f"Source {self.name!r} has no mock data", source=self.name)
        return await self._mock(params)

    def __repr__(self) -> str:
        return f"HttpSource({self.name!r}, {self.url!r})"


__all__ = ["HttpSource"]
