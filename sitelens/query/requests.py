# ==============================================================================
# Analytics Requests
# ==============================================================================
"""
Request models accepted by the QueryGateway.

Optional parameters left as None fall back to the analytics settings when the
gateway handles the request. Validation of ranges and parameters happens in
the gateway so that every rejection surfaces as InvalidRangeError.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from sitelens.exceptions import InvalidRangeError

# Date-range presets offered by the dashboard (days back from now; None = since midnight UTC)
DATE_RANGE_PRESETS: dict[str, Optional[int]] = {
    "today": None,
    "7d": 7,
    "30d": 30,
    "90d": 90,
}

DEFAULT_PRESET = "30d"


def resolve_date_range(preset: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Turn a preset into a concrete [start, end) range ending now.

    Args:
        preset: One of "today", "7d", "30d", "90d"
        now: Reference time (default: current UTC time)

    Returns:
        Tuple of (start, end) as UTC datetimes

    Raises:
        InvalidRangeError: If the preset is unknown
    """
    if preset not in DATE_RANGE_PRESETS:
        raise InvalidRangeError(
            f"Unknown date range '{preset}'. Expected one of: {', '.join(DATE_RANGE_PRESETS)}"
        )
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    days = DATE_RANGE_PRESETS[preset]
    if days is None:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        start = now - timedelta(days=days)
    return start, now


class AnalyticsRequest(BaseModel):
    """Parameters shared by every analytic."""

    site_id: str = Field(min_length=1)
    start: datetime
    end: datetime
    retention_horizon_days: Optional[int] = Field(
        default=None, description="Plan retention horizon in days (-1 = unlimited, None = from settings)"
    )


class AttributionRequest(AnalyticsRequest):
    goal_event: Optional[str] = None
    lookback_window_days: Optional[int] = None


class JourneyRequest(AnalyticsRequest):
    max_transitions: Optional[int] = None
    collapse_self_loops: bool = False


class RetentionRequest(AnalyticsRequest):
    day_offsets: Optional[list[int]] = None


class FormRequest(AnalyticsRequest):
    pass


class DashboardRequest(AnalyticsRequest):
    """All four analytics over one snapshot."""

    goal_event: Optional[str] = None
    lookback_window_days: Optional[int] = None
    max_transitions: Optional[int] = None
    collapse_self_loops: bool = False
    day_offsets: Optional[list[int]] = None
