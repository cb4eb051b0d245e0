# ==============================================================================
# Analytics Domain Models
# ==============================================================================
"""
Pydantic models for raw events, derived analytical structures and reports.

These models are used for:
- Validating events read from the event log (PostgreSQL rows, CSV files)
- Carrying sessions, touchpoints and conversions between the engines
- Serializing reports to the JSON shapes the dashboard consumes

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

import json
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_FORM = "unknown-form"


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Event(BaseModel):
    """
    A single immutable interaction event recorded for a site.

    Attributes:
        id: Unique event identifier
        site_id: Site the event belongs to
        visitor_id: Anonymous visitor identifier
        session_id: Session identifier assigned by the tracker
        event_name: "pageview" or a custom event name
        url: Page URL (absolute URL or bare path)
        referrer: Referring URL, if any
        utm_source / utm_medium / utm_campaign: Campaign tags, if any
        created_at: When the event occurred (UTC)
        properties: Free-form string properties (e.g. form_id)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event identifier")
    site_id: str = Field(..., description="Site identifier")
    visitor_id: str = Field(..., description="Visitor identifier")
    session_id: str = Field(default="", description="Tracker session identifier")
    event_name: str = Field(default="pageview", description="Event name")
    url: str = Field(default="", description="Page URL")
    referrer: str | None = Field(default=None, description="Referrer URL")
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    created_at: datetime = Field(..., description="Event timestamp")
    properties: dict[str, str] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("properties", mode="before")
    @classmethod
    def _coerce_properties(cls, value: Any) -> dict[str, str]:
        # Property bags are ad hoc; anything that is not a mapping degrades to empty.
        if isinstance(value, str):
            try:
                value = json.loads(value) if value.strip() else {}
            except ValueError:
                return {}
        if not isinstance(value, dict):
            return {}
        return {str(k): "" if v is None else str(v) for k, v in value.items()}

    @field_validator("referrer", "utm_source", "utm_medium", "utm_campaign", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def get_property(self, key: str, default: str) -> str:
        """Look up a property, falling back to ``default`` when absent or empty."""
        value = self.properties.get(key)
        return value if value else default

    @property
    def form_id(self) -> str:
        return self.get_property("form_id", UNKNOWN_FORM)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Total ordering within a visitor: timestamp, then id."""
        return (self.created_at, self.id)


class Session(BaseModel):
    """
    A time-bounded run of one visitor's events.

    Events are sorted ascending by timestamp and no two consecutive events
    are further apart than the session timeout.
    """

    session_id: str
    visitor_id: str
    events: list[Event] = Field(default_factory=list)

    @property
    def started_at(self) -> datetime:
        return self.events[0].created_at

    @property
    def ended_at(self) -> datetime:
        return self.events[-1].created_at

    @property
    def entry_url(self) -> str:
        return self.events[0].url

    @property
    def exit_url(self) -> str:
        return self.events[-1].url

    @property
    def duration_seconds(self) -> int:
        """Calculate session duration in seconds."""
        return int((self.ended_at - self.started_at).total_seconds())

    @property
    def event_count(self) -> int:
        return len(self.events)

    def pageviews(self, pageview_events: frozenset[str] | set[str] = frozenset({"pageview"})) -> list[Event]:
        """Events of a pageview type, in session order."""
        return [e for e in self.events if e.event_name in pageview_events]


class Touchpoint(BaseModel):
    """A channel-attributable interaction derived from one event."""

    model_config = ConfigDict(frozen=True)

    channel: str
    medium: str
    campaign: str | None = None
    source: str | None = None
    occurred_at: datetime
    visitor_id: str
    event_id: str


class Conversion(BaseModel):
    """An event whose name equals the goal event."""

    model_config = ConfigDict(frozen=True)

    visitor_id: str
    session_id: str
    occurred_at: datetime
    event_id: str


# ==============================================================================
# Attribution Report
# ==============================================================================


class ChannelStat(BaseModel):
    channel: str
    medium: str
    conversions: int
    campaigns: int = 0


class CampaignStat(BaseModel):
    campaign: str
    source: str | None = None
    medium: str | None = None
    conversions: int


class ConversionPath(BaseModel):
    path: str
    conversions: int
    avg_touchpoints: float


class AttributionSummary(BaseModel):
    total_conversions: int = 0
    converting_visitors: int = 0


class AttributionReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: AttributionSummary = Field(default_factory=AttributionSummary)
    first_touch: list[ChannelStat] = Field(default_factory=list, alias="firstTouch")
    last_touch: list[ChannelStat] = Field(default_factory=list, alias="lastTouch")
    campaigns: list[CampaignStat] = Field(default_factory=list)
    paths: list[ConversionPath] = Field(default_factory=list)


# ==============================================================================
# Journey Report
# ==============================================================================


class JourneyEdge(BaseModel):
    """Aggregated count of same-session transitions between two page paths."""

    model_config = ConfigDict(populate_by_name=True)

    from_path: str = Field(..., alias="from")
    to_path: str = Field(..., alias="to")
    count: int


class PageCount(BaseModel):
    page: str
    count: int


class TopPath(BaseModel):
    path: list[str]
    count: int


class JourneyStats(BaseModel):
    total_sessions: int = 0
    avg_pages_per_session: float = 0.0
    total_transitions: int = 0
    unique_pages: int = 0


class JourneyReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transitions: list[JourneyEdge] = Field(default_factory=list)
    entry_pages: list[PageCount] = Field(default_factory=list, alias="entryPages")
    exit_pages: list[PageCount] = Field(default_factory=list, alias="exitPages")
    top_paths: list[TopPath] = Field(default_factory=list, alias="topPaths")
    stats: JourneyStats = Field(default_factory=JourneyStats)


# ==============================================================================
# Retention Report
# ==============================================================================


class CohortPoint(BaseModel):
    """Retention of one cohort on one day offset."""

    day: int
    retained: int
    rate: float


class CohortData(BaseModel):
    cohort_date: date
    cohort_size: int
    retention: list[CohortPoint] = Field(default_factory=list)


class RetentionSummary(BaseModel):
    day: int
    average_rate: float
    cohorts: int = 0


class RetentionTrendPoint(BaseModel):
    day: int
    retained: int
    rate: float


class RetentionReport(BaseModel):
    cohorts: list[CohortData] = Field(default_factory=list)
    summary: list[RetentionSummary] = Field(default_factory=list)
    trend: list[RetentionTrendPoint] = Field(default_factory=list)


# ==============================================================================
# Form Report
# ==============================================================================


class FormStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(..., alias="formId")
    views: int = 0
    submissions: int = 0
    abandons: int = 0
    conversion_rate: float = Field(default=0.0, alias="conversionRate")


class FormReport(BaseModel):
    forms: list[FormStats] = Field(default_factory=list)


class DashboardReport(BaseModel):
    attribution: AttributionReport
    journeys: JourneyReport
    retention: RetentionReport
    forms: FormReport
