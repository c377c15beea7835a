"""Tests for retry strategies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from feedspine.execution.retry import ExponentialBackoff, NoRetry, RetryContext


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_default_configuration(self):
        strategy = ExponentialBackoff()
        assert strategy.max_retries == 3
        assert strategy.base_delay == 2.0
        assert strategy.multiplier == 2.0
        assert strategy.jitter is False

    def test_delays_double(self):
        strategy = ExponentialBackoff(base_delay=2.0)
        assert [strategy.next_delay(k) for k in range(3)] == [2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=15.0)
        assert strategy.next_delay(5) == 15.0

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0

    def test_should_retry_counts_attempts(self):
        """max_retries retries follow the first attempt."""
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(1) is True
        assert strategy.should_retry(3) is True
        assert strategy.should_retry(4) is False

    def test_predicate_filters_errors(self):
        strategy = ExponentialBackoff(retryable=lambda e: isinstance(e, ConnectionError))
        assert strategy.should_retry(1, ConnectionError()) is True
        assert strategy.should_retry(1, ValueError()) is False


class TestNoRetry:
    def test_never_retries(self):
        assert NoRetry().should_retry(1, ValueError()) is False


class TestRetryContext:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, fake_sleep):
        ctx = RetryContext(ExponentialBackoff(), sleep=fake_sleep)
        func = AsyncMock(return_value="ok")
        assert await ctx.run_async(func, "BTC") == "ok"
        func.assert_awaited_once_with("BTC")
        assert ctx.attempts == 1
        assert fake_sleep.calls == []

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, fake_sleep):
        on_retry = MagicMock()
        ctx = RetryContext(ExponentialBackoff(base_delay=2.0), on_retry=on_retry, sleep=fake_sleep)
        func = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])

        assert await ctx.run_async(func) == "ok"
        assert func.await_count == 3
        assert fake_sleep.calls == [2.0, 4.0]
        assert [c.args[0] for c in on_retry.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_exhausts_and_raises_last_error(self, fake_sleep):
        ctx = RetryContext(ExponentialBackoff(max_retries=3, base_delay=2.0), sleep=fake_sleep)
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError, match="down"):
            await ctx.run_async(func)

        assert func.await_count == 4
        assert fake_sleep.calls == [2.0, 4.0, 8.0]
        assert len(ctx.errors) == 4
        assert [attempt for attempt, _ in ctx.errors] == [1, 2, 3, 4]
        assert isinstance(ctx.last_error, ConnectionError)
        assert ctx.attempts == 4

    @pytest.mark.asyncio
    async def test_non_retryable_stops_immediately(self, fake_sleep):
        strategy = ExponentialBackoff(retryable=lambda e: not isinstance(e, ValueError))
        ctx = RetryContext(strategy, sleep=fake_sleep)
        func = AsyncMock(side_effect=ValueError("bad payload"))

        with pytest.raises(ValueError):
            await ctx.run_async(func)

        assert func.await_count == 1
        assert fake_sleep.calls == []
