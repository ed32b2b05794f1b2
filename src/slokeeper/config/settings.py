"""
Application settings using Pydantic.

Provides environment-based configuration loading with SLOKEEPER_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SLOKEEPER_",
    )

    # SLO configuration store
    database_url: str = "postgresql+psycopg://localhost/slokeeper"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Telemetry store (aggregates + raw events); falls back to database_url
    telemetry_database_url: str | None = None
    query_timeout_seconds: float = 120.0
    raw_timestamp_column: str = "Timestamp"
    aggregation_bucket_seconds: int = 60

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    # Burn alerts
    notification_timeout_seconds: float = 10.0
    realert_interval_minutes: int = 60
    advance_alert_state_on_delivery_failure: bool = True
    frontend_url: str = ""

    # Scheduler
    tick_interval_seconds: float = 60.0
    tick_timeout_seconds: float = 300.0
    slo_timeout_seconds: float = 150.0
    max_concurrency: int = 8
    aggregate_on_tick: bool = False
    aggregation_timeout_seconds: float = 60.0
    aggregation_max_buckets: int = 1440

    @property
    def effective_telemetry_url(self) -> str:
        return self.telemetry_database_url or self.database_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
