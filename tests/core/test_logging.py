"""
Tests for the logging module.

Tests verify:
- JSON vs console renderer selection
- Service metadata and ECS field names on rendered events
- Level filtering
- LogContext binding
- FeedContext.from_env wiring of FEEDSPINE_* logging flags
"""

import json
import logging
from unittest.mock import patch

import structlog

from feedspine.context import FeedContext
from feedspine.core.logging import (
    LogContext,
    _add_service_metadata,
    _elasticsearch_compatible,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Test renderer selection and processor chain."""

    def teardown_method(self):
        structlog.reset_defaults()

    def test_json_renderer(self):
        configure_logging(json_format=True)
        processors = structlog.get_config()["processors"]

        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert _elasticsearch_compatible in processors

    def test_console_renderer(self):
        configure_logging(json_format=False)
        processors = structlog.get_config()["processors"]

        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
        assert _elasticsearch_compatible not in processors

    def test_auto_detects_tty(self):
        with patch("feedspine.core.logging.sys.stdout") as stdout:
            stdout.isatty.return_value = True
            configure_logging()
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

        with patch("feedspine.core.logging.sys.stdout") as stdout:
            stdout.isatty.return_value = False
            configure_logging()
        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

    def test_timestamp_optional(self):
        configure_logging(json_format=True, add_timestamp=False)
        processors = structlog.get_config()["processors"]
        assert not any(isinstance(p, structlog.processors.TimeStamper) for p in processors)

    def test_json_event_fields(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="INFO", json_format=True, service="pricing")

        get_logger("feedspine.test").info("fetcher.retry", source="binance", attempt=2)

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["event"] == "fetcher.retry"
        assert payload["source"] == "binance"
        assert payload["attempt"] == 2
        assert payload["service.name"] == "pricing"
        assert payload["log.level"] == "info"
        assert payload["logger"] == "feedspine.test"
        assert "@timestamp" in payload

    def test_debug_suppressed_at_info(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="INFO", json_format=True)

        get_logger("feedspine.quiet").debug("fetcher.cache_hit", source="binance")

        assert not [r for r in caplog.records if r.name == "feedspine.quiet"]


class TestProcessors:
    def teardown_method(self):
        structlog.reset_defaults()

    def test_service_metadata(self):
        configure_logging(json_format=True, service="pricing")
        assert _add_service_metadata(None, "info", {}) == {"service.name": "pricing"}

    def test_service_metadata_does_not_override(self):
        event = _add_service_metadata(None, "info", {"service.name": "explicit"})
        assert event["service.name"] == "explicit"

    def test_elasticsearch_field_names(self):
        event = _elasticsearch_compatible(None, "info", {"timestamp": "t", "level": "info", "event": "e"})
        assert event == {"@timestamp": "t", "log.level": "info", "event": "e"}


class TestLogContext:
    def teardown_method(self):
        structlog.contextvars.clear_contextvars()

    def test_binds_and_unbinds(self):
        with LogContext(aggregate="btc_usd"):
            assert structlog.contextvars.get_contextvars()["aggregate"] == "btc_usd"
        assert "aggregate" not in structlog.contextvars.get_contextvars()

    def test_unbinds_on_error(self):
        try:
            with LogContext(aggregate="btc_usd"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert "aggregate" not in structlog.contextvars.get_contextvars()


class TestFromEnv:
    """FeedContext.from_env loads settings and configures logging."""

    def test_debug_and_json_flags(self, monkeypatch):
        monkeypatch.setenv("FEEDSPINE_DEBUG", "true")
        monkeypatch.setenv("FEEDSPINE_JSON_LOGS", "true")

        with patch("feedspine.context.configure_logging") as configure:
            ctx = FeedContext.from_env()

        configure.assert_called_once_with(level="DEBUG", json_format=True)
        assert ctx.settings.debug is True

    def test_log_level_without_debug(self, monkeypatch):
        monkeypatch.delenv("FEEDSPINE_DEBUG", raising=False)
        monkeypatch.delenv("FEEDSPINE_JSON_LOGS", raising=False)
        monkeypatch.setenv("FEEDSPINE_LOG_LEVEL", "WARNING")

        with patch("feedspine.context.configure_logging") as configure:
            FeedContext.from_env()

        configure.assert_called_once_with(level="WARNING", json_format=None)

    def test_source_overrides_from_env(self, monkeypatch):
        monkeypatch.setenv("FEEDSPINE_SOURCES", '{"binance": {"cache_ttl": 5}}')

        with patch("feedspine.context.configure_logging"):
            ctx = FeedContext.from_env()

        assert ctx.settings.source_config("binance").cache_ttl == 5.0
