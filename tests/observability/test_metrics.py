"""Tests for the in-process metrics collector."""

import pytest

from feedspine.core.settings import SourceConfig
from feedspine.execution.fetcher import ResilientFetcher
from feedspine.observability.metrics import FeedMetrics
from feedspine.sources.base import FunctionSource


class TestFeedMetrics:
    def test_unknown_source_is_empty(self):
        stats = FeedMetrics().stats("nobody")
        assert stats.requests == 0
        assert stats.error_rate == 0.0
        assert stats.cache_hit_rate == 0.0
        assert stats.latency.p50 == 0.0

    def test_rates(self):
        metrics = FeedMetrics()
        for _ in range(4):
            metrics.record("binance", "requests")
        metrics.record("binance", "errors")
        metrics.record("binance", "cache_hits")
        metrics.record("binance", "cache_misses")
        metrics.record("binance", "cache_misses")
        metrics.record("binance", "cache_misses")

        stats = metrics.stats("binance")
        assert stats.error_rate == 25.0
        assert stats.cache_hit_rate == 25.0

    def test_latency_percentiles(self):
        metrics = FeedMetrics()
        for ms in range(1, 101):
            metrics.record("binance", "successes", ms / 1000)

        latency = metrics.stats("binance").latency
        assert latency.p50 == 0.051
        assert latency.p95 == 0.096
        assert latency.p99 == 0.1

    def test_sample_window_is_bounded(self):
        metrics = FeedMetrics(max_samples=3)
        for value in (9.0, 1.0, 1.0, 1.0):
            metrics.record("binance", "successes", value)
        assert metrics.stats("binance").latency.p99 == 1.0

    def test_unknown_event(self):
        with pytest.raises(ValueError):
            FeedMetrics().record("binance", "explosions")

    def test_collect_and_reset(self):
        metrics = FeedMetrics()
        metrics.record("binance", "requests")
        samples = metrics.collect()
        assert {"name": "feeds_requests_total", "labels": {"source": "binance"}, "value": 1} in samples

        metrics.reset()
        assert metrics.collect() == []
        assert metrics.sources() == []


class TestFeedMetricsHooks:
    @pytest.mark.asyncio
    async def test_wired_into_fetcher(self, clock, fake_sleep):
        calls = 0

        async def fetch(params):
            nonlocal calls
            calls += 1
            if params.get("fail"):
                raise ValueError("bad")
            return 1.0

        metrics = FeedMetrics()
        fetcher = ResilientFetcher(
            FunctionSource("binance", fetch),
            SourceConfig(),
            hooks=metrics.hooks(),
            clock=clock,
            sleep=fake_sleep,
        )

        await fetcher.get({"symbol": "BTC"})
        await fetcher.get({"symbol": "BTC"})
        with pytest.raises(Exception):
            await fetcher.get({"fail": True})

        stats = metrics.stats("binance")
        assert stats.requests == 3
        assert stats.successes == 2
        assert stats.errors == 1
        assert stats.cache_hits == 1
        assert stats.cache_misses == 2
        assert stats.to_dict()["source"] == "binance"
        assert [s.source for s in metrics.summary()] == ["binance"]
