"""
Configuration Management for SettleUp

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Money tolerances and currency display live in one place so that every
component agrees on what "settled" and "zero" mean.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Debt & settlement engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SETTLEUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    epsilon_minor_units: int = Field(
        default=0,
        ge=0,
        description="Tolerance (in minor units) under which a balance or debt counts as zero"
    )
    minor_unit_exponent: int = Field(
        default=2,
        ge=0,
        le=4,
        description="Decimal places between the major and minor currency unit"
    )
    currency_symbol: str = Field(
        default="₹",
        min_length=1,
        max_length=8,
        description="Symbol used when rendering amounts"
    )
    max_amount_minor_units: int = Field(
        default=10_000_000_000,
        gt=0,
        description="Largest single record amount accepted (sanity ceiling)"
    )

    # Storage collaborator retries (used by the flows, never by the engine)
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times a storage write is attempted"
    )
    storage_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="Exponential backoff multiplier between storage retries"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    debug_mode: bool = Field(
        default=False,
        description="Log at DEBUG level regardless of LOG_LEVEL"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept standard logging level names."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.strip().upper()
        if level not in allowed:
            raise ValueError(f"Unsupported log level: {v}. Allowed: {sorted(allowed)}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
