"""
Centralized settings for strata.

Manifesto:
    One validated, cached settings object replaces ad-hoc environment
    lookups scattered through the engine.  Every knob the record engine,
    relation resolver and CLI read lives here.

All fields can be set through ``STRATA_*`` environment variables (e.g.
``STRATA_MAX_JOIN_DEPTH=4``) or a ``.env`` file.  Mappings use JSON in the
environment (``STRATA_DATA_SOURCES='{"reporting": "sqlite:///r.db"}'``).

Tags:
    strata, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrataSettings(BaseSettings):
    """Strata configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STRATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Data sources ─────────────────────────────────────────────
    default_data_source: str = Field(
        default="default",
        description="Data source used by schemas that do not declare one",
    )
    data_sources: dict[str, str] = Field(
        default_factory=dict,
        description="Data source name -> connection URL",
    )

    # ── Relation resolution ──────────────────────────────────────
    max_join_depth: int = Field(default=8, ge=1)
    parallel_fanout: bool = Field(default=True)

    # ── Execution ────────────────────────────────────────────────
    statement_timeout: float | None = Field(
        default=None,
        description="Seconds before a backend call is abandoned",
    )

    # ── Cache ────────────────────────────────────────────────────
    cache_ttl_seconds: int = Field(default=300)
    cache_max_size: int = Field(default=10_000)
    redis_url: str | None = Field(default=None)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Paths ────────────────────────────────────────────────────
    schema_dir: str = Field(default="schemas")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("statement_timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            return None
        return value

    @property
    def json_logs(self) -> bool:
        return self.log_format.lower() == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, StrataSettings] = {}


def get_settings(*, _force_reload: bool = False) -> StrataSettings:
    """Load, validate, and cache a :class:`StrataSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = StrataSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "StrataSettings",
    "get_settings",
    "clear_settings_cache",
]
