"""Settings for feedspine sources and the pipeline around them.

Every source wrapped by a ``ResilientFetcher`` is tuned by one
:class:`SourceConfig`. :class:`FeedSettings` loads defaults and per-source
overrides from the environment (and ``.env``), so a deployment can slow down
one noisy vendor without a code change.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first fetch
    - **Environment-driven:** ``FEEDSPINE_`` prefixed env vars and ``.env``
    - **Per-source overrides:** ``FEEDSPINE_SOURCES='{"binance": {...}}'``
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> settings = FeedSettings(sources={"binance": {"rate_per_minute": 1200}})
    >>> settings.source_config("binance").rate_per_minute
    1200
    >>> settings.source_config("coingecko").cache_ttl
    30.0

Tags:
    settings, configuration, pydantic, environment, feedspine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceConfig(BaseModel):
    """Resilience configuration for one source.

    All durations are in seconds.

    Fields
    ──────
    rate_per_minute            : Upstream call quota; ``None`` disables pacing
    cache_ttl                  : Lifetime of a cached response
    cache_max_size             : Maximum cached responses for this source
    use_mocks                  : Serve the source's mock data, never call upstream
    circuit_threshold          : Consecutive failures that open the circuit
    circuit_cooldown           : Time the circuit stays open before a trial call
    circuit_half_open_successes: Trial successes needed to close the circuit
    timeout                    : Per-attempt upstream timeout, also the
                                 rate-limit queueing budget
    max_retries                : Retries after the first attempt
    retry_base_delay           : Delay before the first retry; doubles per retry
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    rate_per_minute: float | None = Field(default=None, gt=0)
    cache_ttl: float = Field(default=30.0, ge=0)
    cache_max_size: int = Field(default=1000, ge=1)
    use_mocks: bool = False
    circuit_threshold: int = Field(default=5, ge=1)
    circuit_cooldown: float = Field(default=60.0, ge=0)
    circuit_half_open_successes: int = Field(default=3, ge=1)
    timeout: float = Field(default=10.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=2.0, ge=0)


class FeedSettings(BaseSettings):
    """Process-wide feedspine settings.

    Fields
    ──────
    debug     : Enable debug mode (verbose logging, etc.)
    log_level : Structlog log level
    json_logs : Force JSON (True) or console (False) logs; ``None`` auto-detects
    defaults  : SourceConfig applied to every source
    sources   : Per-source overrides, merged field-by-field onto ``defaults``
    """

    model_config = SettingsConfigDict(
        env_prefix="FEEDSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Sources ──────────────────────────────────────────────────
    defaults: SourceConfig = Field(default_factory=SourceConfig)
    sources: dict[str, dict[str, object]] = Field(
        default_factory=dict,
        description="Per-source SourceConfig overrides keyed by source name",
    )

    def source_config(self, name: str) -> SourceConfig:
        """Resolve the effective configuration for a source."""
        overrides = self.sources.get(name)
        if not overrides:
            return self.defaults
        return SourceConfig.model_validate(
            {**self.defaults.model_dump(), **overrides}
        )


__all__ = ["SourceConfig", "FeedSettings"]
