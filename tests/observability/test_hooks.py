"""Tests for fire-and-forget instrumentation hooks."""

import asyncio
from unittest.mock import MagicMock

import pytest

from feedspine.observability.hooks import FeedHooks


class TestEmit:
    def test_missing_hook_is_a_no_op(self):
        FeedHooks().emit("on_request", "binance", "{}")

    def test_calls_hook_with_args(self):
        hook = MagicMock()
        FeedHooks(on_cache_hit=hook).emit("on_cache_hit", "binance", "key")
        hook.assert_called_once_with("binance", "key")

    def test_raising_hook_is_swallowed(self):
        hooks = FeedHooks(on_error=MagicMock(side_effect=RuntimeError("boom")))
        hooks.emit("on_error", "binance", ValueError("x"), 0.1)

    def test_async_hook_without_loop_is_dropped(self):
        async def hook(source, key):
            pass

        FeedHooks(on_request=hook).emit("on_request", "binance", "key")

    @pytest.mark.asyncio
    async def test_async_hook_runs_in_background(self):
        seen = []

        async def hook(source, key):
            seen.append((source, key))

        FeedHooks(on_request=hook).emit("on_request", "binance", "key")
        assert seen == []
        await asyncio.sleep(0)
        assert seen == [("binance", "key")]

    @pytest.mark.asyncio
    async def test_failing_async_hook_is_contained(self):
        async def hook(source, key):
            raise RuntimeError("async boom")

        FeedHooks(on_request=hook).emit("on_request", "binance", "key")
        await asyncio.sleep(0)
        await asyncio.sleep(0)


class TestCombine:
    def test_fans_out(self):
        first, second = MagicMock(), MagicMock()
        hooks = FeedHooks.combine(FeedHooks(on_success=first), None, FeedHooks(on_success=second))
        hooks.emit("on_success", "binance", 0.5, False)
        first.assert_called_once_with("binance", 0.5, False)
        second.assert_called_once_with("binance", 0.5, False)

    def test_one_failure_does_not_stop_others(self):
        second = MagicMock()
        hooks = FeedHooks.combine(
            FeedHooks(on_success=MagicMock(side_effect=RuntimeError("x"))),
            FeedHooks(on_success=second),
        )
        hooks.emit("on_success", "binance", 0.5, False)
        second.assert_called_once()

    def test_unset_events_stay_unset(self):
        hooks = FeedHooks.combine(FeedHooks(on_success=MagicMock()))
        assert hooks.on_error is None
