# ==============================================================================
# SiteLens Utilities
# ==============================================================================
"""
Shared utilities for sitelens.

This module exports configuration and retry helpers for use throughout the package.
"""

from sitelens.utils.config import (
    PLAN_RETENTION_DAYS,
    AnalyticsSettings,
    PlanSettings,
    PostgresSettings,
    Settings,
    ValkeySettings,
    get_settings,
)
from sitelens.utils.retry import (
    POSTGRES_RETRY_EXCEPTIONS,
    REDIS_RETRY_EXCEPTIONS,
    retry_light,
    retry_query,
)

__all__ = [
    # Config
    "AnalyticsSettings",
    "PLAN_RETENTION_DAYS",
    "PlanSettings",
    "PostgresSettings",
    "Settings",
    "ValkeySettings",
    "get_settings",
    # Retry
    "POSTGRES_RETRY_EXCEPTIONS",
    "REDIS_RETRY_EXCEPTIONS",
    "retry_light",
    "retry_query",
]
