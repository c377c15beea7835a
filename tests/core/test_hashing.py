"""Tests for request keys and content hashes."""

from dataclasses import dataclass
from datetime import date
from enum import Enum

from pydantic import BaseModel

from feedspine.core.hashing import canonicalize, compute_hash, request_key


class Side(Enum):
    BUY = "buy"


class Quote(BaseModel):
    symbol: str
    venue: str = "spot"


@dataclass
class Window:
    start: date
    days: int


class TestRequestKey:
    def test_key_order_does_not_matter(self):
        assert request_key({"a": 1, "b": 2}) == request_key({"b": 2, "a": 1})

    def test_nested_key_order_does_not_matter(self):
        left = {"outer": {"x": 1, "y": [1, {"p": 1, "q": 2}]}}
        right = {"outer": {"y": [1, {"q": 2, "p": 1}], "x": 1}}
        assert request_key(left) == request_key(right)

    def test_sequence_order_matters(self):
        assert request_key({"ids": [1, 2]}) != request_key({"ids": [2, 1]})

    def test_different_values_differ(self):
        assert request_key({"symbol": "BTC"}) != request_key({"symbol": "ETH"})

    def test_compact_json(self):
        assert request_key({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_pydantic_model_matches_mapping(self):
        assert request_key(Quote(symbol="BTC")) == request_key({"venue": "spot", "symbol": "BTC"})

    def test_dataclass_and_dates(self):
        key = request_key(Window(start=date(2024, 1, 2), days=7))
        assert key == '{"days":7,"start":"2024-01-02"}'

    def test_scalars(self):
        assert request_key("BTC") == '"BTC"'
        assert request_key(None) == "null"


class TestCanonicalize:
    def test_sets_are_sorted(self):
        assert canonicalize({3, 1, 2}) == [1, 2, 3]

    def test_enums_use_value(self):
        assert canonicalize({"side": Side.BUY}) == {"side": "buy"}

    def test_tuples_become_lists(self):
        assert canonicalize((1, 2)) == [1, 2]


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("a", 1) == compute_hash("a", 1)

    def test_length(self):
        assert len(compute_hash("a")) == 32
        assert len(compute_hash("a", length=12)) == 12

    def test_delimited(self):
        assert compute_hash("ab", "c") != compute_hash("a", "bc")
