# ==============================================================================
# Retention Cohort Engine
# ==============================================================================
"""
Day-granularity retention cohorts.

A visitor belongs to the cohort of the UTC calendar day of their first-ever
event for the site. Membership is fixed at that date and never changes,
independent of the reporting range. For each cohort and day offset N, a
visitor is retained if they have at least one event on cohort_date + N.

Cohorts too young to have reached day N are left out of that day entirely:
they appear neither in the cohort's retention list nor in the day's
average, rather than being counted as 0%.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta, timezone

from sitelens.core.models import (
    CohortData,
    CohortPoint,
    Event,
    RetentionReport,
    RetentionSummary,
    RetentionTrendPoint,
    as_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_DAY_OFFSETS = (1, 7, 30)
RATE_PRECISION = 4


def retention_rate(retained: int, cohort_size: int) -> float:
    """Fraction of a cohort retained; 0.0 for an empty cohort."""
    if cohort_size <= 0:
        return 0.0
    return round(min(max(retained / cohort_size, 0.0), 1.0), RATE_PRECISION)


def _utc_day(value: datetime) -> date:
    return as_utc(value).date()


class RetentionCohortEngine:
    """Buckets visitors by first-seen day and computes N-day return rates."""

    def __init__(self, day_offsets: Sequence[int] = DEFAULT_DAY_OFFSETS):
        if any(offset < 0 for offset in day_offsets):
            raise ValueError("Retention day offsets must not be negative")
        self.day_offsets = sorted(set(day_offsets))

    @staticmethod
    def first_seen_days(
        events: Iterable[Event],
        first_seen: Mapping[str, datetime] | None = None,
    ) -> dict[str, date]:
        """
        Resolve each visitor's cohort date.

        Args:
            events: Event snapshot
            first_seen: First-ever event time per visitor, from the event log.
                Visitors missing from it fall back to their earliest event in
                the snapshot.

        Returns:
            Dict mapping visitor_id to first-seen UTC day
        """
        earliest: dict[str, datetime] = {v: as_utc(ts) for v, ts in (first_seen or {}).items()}
        for event in events:
            known = earliest.get(event.visitor_id)
            if known is None or event.created_at < known:
                earliest[event.visitor_id] = event.created_at
        return {visitor: _utc_day(ts) for visitor, ts in earliest.items()}

    def compute(
        self,
        events: Iterable[Event],
        start: datetime | None = None,
        end: datetime | None = None,
        as_of: date | None = None,
        first_seen: Mapping[str, datetime] | None = None,
    ) -> RetentionReport:
        """
        Compute cohorts and per-day retention.

        Args:
            events: Event snapshot covering the cohorts' activity
            start: Cohorts first seen before this time are not reported
            end: Cohorts first seen at or after this time are not reported
            as_of: Last observed day; a cohort has reached day N when
                cohort_date + N <= as_of. Defaults to today (UTC).
            first_seen: Optional first-ever event time per visitor

        Returns:
            RetentionReport with cohorts, per-day summary and pooled trend
        """
        events = list(events)
        as_of = as_of or datetime.now(timezone.utc).date()
        first_day = _utc_day(start) if start is not None else None
        last_day = _utc_day(end - timedelta(microseconds=1)) if end is not None else None

        active_days: dict[str, set[date]] = defaultdict(set)
        for event in events:
            active_days[event.visitor_id].add(_utc_day(event.created_at))

        members: dict[date, list[str]] = defaultdict(list)
        for visitor, cohort_date in self.first_seen_days(events, first_seen).items():
            if visitor not in active_days:
                continue
            if first_day is not None and cohort_date < first_day:
                continue
            if last_day is not None and cohort_date > last_day:
                continue
            members[cohort_date].append(visitor)

        cohorts: list[CohortData] = []
        rates_by_day: dict[int, list[float]] = defaultdict(list)
        pooled: dict[int, list[int]] = defaultdict(lambda: [0, 0])

        for cohort_date in sorted(members):
            visitors = members[cohort_date]
            cohort = CohortData(cohort_date=cohort_date, cohort_size=len(visitors))
            for offset in self.day_offsets:
                target = cohort_date + timedelta(days=offset)
                if target > as_of:
                    continue
                retained = sum(1 for v in visitors if target in active_days[v])
                rate = retention_rate(retained, cohort.cohort_size)
                cohort.retention.append(CohortPoint(day=offset, retained=retained, rate=rate))
                rates_by_day[offset].append(rate)
                pooled[offset][0] += retained
                pooled[offset][1] += cohort.cohort_size
            cohorts.append(cohort)

        logger.debug("Computed %d cohorts as of %s", len(cohorts), as_of)

        summary = []
        trend = []
        for offset in self.day_offsets:
            rates = rates_by_day.get(offset, [])
            average = round(sum(rates) / len(rates), RATE_PRECISION) if rates else 0.0
            summary.append(RetentionSummary(day=offset, average_rate=average, cohorts=len(rates)))
            retained, size = pooled.get(offset, (0, 0))
            trend.append(RetentionTrendPoint(day=offset, retained=retained, rate=retention_rate(retained, size)))

        return RetentionReport(cohorts=cohorts, summary=summary, trend=trend)
