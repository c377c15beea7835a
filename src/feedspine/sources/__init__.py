"""Source adapters consumed by the fetch pipeline."""

from feedspine.sources.base import FunctionSource, Source, parse_payload
from feedspine.sources.http import HttpSource

__all__ = ["FunctionSource", "HttpSource", "Source", "parse_payload"]
