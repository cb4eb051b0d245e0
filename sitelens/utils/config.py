# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()

# Retention horizon per plan, in days (-1 = unlimited)
PLAN_RETENTION_DAYS = {
    "hobby": 7,
    "pro": 365,
    "business": 730,
    "selfhosted": -1,
}


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings for the event log."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="", description="PostgreSQL password")
    database: str = Field(default="analytics", description="Database name")
    schema_name: str = Field(default="public", description="Schema holding the events table")
    sslmode: str = Field(default="prefer", description="SSL mode")
    statement_timeout_ms: int = Field(
        default=30_000, description="Server-side statement timeout in milliseconds"
    )

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for the report cache."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    enabled: bool = Field(default=False, description="Cache reports in Valkey")
    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")
    cache_ttl_seconds: int = Field(default=300, description="TTL for cached reports in seconds")

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class AnalyticsSettings(BaseSettings):
    """Defaults for the analytical engines and query gateway."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    session_timeout_minutes: int = Field(
        default=30, description="Session inactivity timeout in minutes"
    )
    goal_event: str = Field(default="conversion", description="Default conversion event name")
    lookback_window_days: int = Field(
        default=90, description="Attribution lookback window in days"
    )
    retention_day_offsets: list[int] = Field(
        default_factory=lambda: [1, 7, 30], description="Retention day offsets"
    )
    max_transitions: int = Field(default=15, description="Journey transitions returned")
    top_paths_limit: int = Field(default=50, description="Top session paths returned")
    max_path_hops: int = Field(default=10, description="Session paths truncated to this many pages")
    pageview_events: list[str] = Field(
        default_factory=lambda: ["pageview"], description="Event names counted as page views"
    )
    query_timeout_seconds: float = Field(
        default=30.0, description="Deadline for event log retrieval per query"
    )
    max_workers: int = Field(default=4, description="Threads for parallel dashboard computation")


class PlanSettings(BaseSettings):
    """Billing plan limits passed in from the billing service."""

    model_config = SettingsConfigDict(env_prefix="PLAN_")

    name: str = Field(default="selfhosted", description="Plan name (hobby, pro, business, selfhosted)")
    retention_days: Optional[int] = Field(
        default=None, description="Override the plan's retention horizon (-1 = unlimited)"
    )
    strict_retention_horizon: bool = Field(
        default=False,
        description="Reject ranges beyond the horizon instead of moving the start forward",
    )

    @property
    def retention_horizon_days(self) -> int:
        """Effective retention horizon in days (-1 = unlimited)."""
        if self.retention_days is not None:
            return self.retention_days
        return PLAN_RETENTION_DAYS.get(self.name.lower(), -1)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    plan: PlanSettings = Field(default_factory=PlanSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
