# ==============================================================================
# Query Layer
# ==============================================================================
"""
External-facing query boundary: request models and the QueryGateway.
"""

from sitelens.query.gateway import QueryGateway, cache_key
from sitelens.query.requests import (
    DATE_RANGE_PRESETS,
    AnalyticsRequest,
    AttributionRequest,
    DashboardRequest,
    FormRequest,
    JourneyRequest,
    RetentionRequest,
    resolve_date_range,
)

__all__ = [
    "AnalyticsRequest",
    "AttributionRequest",
    "DATE_RANGE_PRESETS",
    "DashboardRequest",
    "FormRequest",
    "JourneyRequest",
    "QueryGateway",
    "RetentionRequest",
    "cache_key",
    "resolve_date_range",
]
