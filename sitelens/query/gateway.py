# ==============================================================================
# Query Gateway
# ==============================================================================
"""
Stateless facade between callers and the analytical engines.

For every request the gateway:
1. Validates the range and parameters (InvalidRangeError, before any I/O)
2. Applies the plan's retention horizon to the start of the range
3. Fetches a complete event snapshot under a deadline (UpstreamUnavailableError)
4. Runs the engine(s) on that snapshot, optionally caching the report

Engines never see partial data: a failed or timed-out fetch aborts the whole
request.
"""

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from sitelens.base import Cache, EventFilters, EventLog
from sitelens.core.attribution import AttributionEngine
from sitelens.core.forms import FORM_EVENTS, FormFunnelAnalyzer
from sitelens.core.journeys import JourneyGraphBuilder
from sitelens.core.models import (
    AttributionReport,
    DashboardReport,
    Event,
    FormReport,
    JourneyReport,
    RetentionReport,
    as_utc,
)
from sitelens.core.retention import RetentionCohortEngine
from sitelens.core.sessionizer import Sessionizer
from sitelens.exceptions import InvalidRangeError, UpstreamUnavailableError
from sitelens.query.requests import (
    AnalyticsRequest,
    AttributionRequest,
    DashboardRequest,
    FormRequest,
    JourneyRequest,
    RetentionRequest,
)
from sitelens.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "sitelens:report"

ReportT = TypeVar("ReportT", bound=BaseModel)


def cache_key(analytic: str, params: dict) -> str:
    """
    Build a cache key covering every parameter of a query.

    Args:
        analytic: Analytic name (attribution, journeys, ...)
        params: Effective query parameters; must include site_id

    Returns:
        Key of the form sitelens:report:{analytic}:{site_id}:{digest}
    """
    payload = json.dumps(params, sort_keys=True, default=str)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]
    return f"{CACHE_KEY_PREFIX}:{analytic}:{params['site_id']}:{digest}"


class QueryGateway:
    """
    Dispatches analytics requests to the engines.

    The gateway holds no per-request state; the thread pool is only used to
    bound event log calls by a deadline and to run the dashboard's four
    computations in parallel.
    """

    def __init__(
        self,
        event_log: EventLog,
        cache: Cache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the gateway.

        Args:
            event_log: Connected event log to read from
            cache: Optional report cache
            settings: Application settings. If None, uses get_settings().
            clock: Returns the current UTC time (default: datetime.now)
        """
        self._event_log = event_log
        self._cache = cache
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessionizer = Sessionizer(self._settings.analytics.session_timeout_minutes)
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self._settings.analytics.max_workers),
            thread_name_prefix="sitelens-query",
        )

    def __enter__(self) -> "QueryGateway":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the worker pool without waiting for abandoned fetches."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ==========================================================================
    # Analytics
    # ==========================================================================

    def attribution(self, request: AttributionRequest) -> AttributionReport:
        """First-touch and last-touch attribution for conversions in range."""
        start, end, floor = self._resolve_range(request)
        goal = self._goal(request.goal_event)
        lookback = self._lookback(request.lookback_window_days)
        engine = AttributionEngine(goal, lookback, self._sessionizer)
        snapshot_start = self._snapshot_start(start, lookback, floor)

        params = self._params(
            request,
            start,
            end,
            goal_event=goal,
            lookback_window_days=lookback,
            snapshot_start=snapshot_start.isoformat(),
        )

        def compute() -> AttributionReport:
            events = self._fetch(
                lambda: self._event_log.query_events(request.site_id, snapshot_start, end)
            )
            return engine.attribute(events, start, end)

        return self._cached("attribution", params, AttributionReport, compute)

    def journeys(self, request: JourneyRequest) -> JourneyReport:
        """Page transition graph for sessions in range."""
        start, end, _ = self._resolve_range(request)
        builder = self._journey_builder(request.max_transitions, request.collapse_self_loops)

        params = self._params(
            request,
            start,
            end,
            max_transitions=builder.max_transitions,
            collapse_self_loops=builder.collapse_self_loops,
            top_paths_limit=builder.top_paths_limit,
            max_path_hops=builder.max_path_hops,
            pageview_events=sorted(builder.pageview_events),
        )

        def compute() -> JourneyReport:
            events = self._fetch(lambda: self._event_log.query_events(request.site_id, start, end))
            return builder.build(self._sessionizer.sessionize_all(events))

        return self._cached("journeys", params, JourneyReport, compute)

    def retention(self, request: RetentionRequest) -> RetentionReport:
        """Day-N retention for cohorts first seen in range."""
        start, end, _ = self._resolve_range(request)
        engine = RetentionCohortEngine(self._offsets(request.day_offsets))
        as_of = self._as_of(end)

        params = self._params(request, start, end, day_offsets=engine.day_offsets, as_of=as_of)

        def compute() -> RetentionReport:
            events, first_seen = self._fetch(lambda: self._load_with_first_seen(request.site_id, start, end))
            return engine.compute(events, start, end, as_of=as_of, first_seen=first_seen)

        return self._cached("retention", params, RetentionReport, compute)

    def forms(self, request: FormRequest) -> FormReport:
        """Per-form views, submissions, abandons and conversion rate."""
        start, end, _ = self._resolve_range(request)
        params = self._params(request, start, end)
        filters = EventFilters(event_names=list(FORM_EVENTS))

        def compute() -> FormReport:
            events = self._fetch(
                lambda: self._event_log.query_events(request.site_id, start, end, filters)
            )
            return FormFunnelAnalyzer().analyze(events)

        return self._cached("forms", params, FormReport, compute)

    def dashboard(self, request: DashboardRequest) -> DashboardReport:
        """
        All four analytics over a single event snapshot.

        The snapshot covers the attribution lookback as well as the requested
        range; it is fetched once and the engines run in parallel on it.
        """
        start, end, floor = self._resolve_range(request)
        goal = self._goal(request.goal_event)
        lookback = self._lookback(request.lookback_window_days)
        attribution_engine = AttributionEngine(goal, lookback, self._sessionizer)
        builder = self._journey_builder(request.max_transitions, request.collapse_self_loops)
        retention_engine = RetentionCohortEngine(self._offsets(request.day_offsets))
        as_of = self._as_of(end)
        snapshot_start = self._snapshot_start(start, lookback, floor)

        params = self._params(
            request,
            start,
            end,
            goal_event=goal,
            lookback_window_days=lookback,
            max_transitions=builder.max_transitions,
            collapse_self_loops=builder.collapse_self_loops,
            top_paths_limit=builder.top_paths_limit,
            max_path_hops=builder.max_path_hops,
            pageview_events=sorted(builder.pageview_events),
            day_offsets=retention_engine.day_offsets,
            as_of=as_of,
            snapshot_start=snapshot_start.isoformat(),
        )

        def compute() -> DashboardReport:
            events, first_seen = self._fetch(
                lambda: self._load_with_first_seen(request.site_id, snapshot_start, end)
            )
            in_range = [e for e in events if start <= e.created_at < end]

            attribution = self._executor.submit(attribution_engine.attribute, events, start, end)
            journeys = self._executor.submit(
                lambda: builder.build(self._sessionizer.sessionize_all(in_range))
            )
            retention = self._executor.submit(
                retention_engine.compute, events, start, end, as_of, first_seen
            )
            forms = self._executor.submit(FormFunnelAnalyzer().analyze, in_range)

            return DashboardReport(
                attribution=attribution.result(),
                journeys=journeys.result(),
                retention=retention.result(),
                forms=forms.result(),
            )

        return self._cached("dashboard", params, DashboardReport, compute)

    # ==========================================================================
    # Validation
    # ==========================================================================

    def horizon_floor(self, retention_horizon_days: Optional[int]) -> datetime | None:
        """
        Earliest instant the plan allows querying.

        Args:
            retention_horizon_days: Request override; None uses the plan settings

        Returns:
            The floor as a UTC datetime, or None when the horizon is unlimited
        """
        days = retention_horizon_days
        if days is None:
            days = self._settings.plan.retention_horizon_days
        if days < 0:
            return None
        return as_utc(self._clock()) - timedelta(days=days)

    def _resolve_range(self, request: AnalyticsRequest) -> tuple[datetime, datetime, datetime | None]:
        start, end = as_utc(request.start), as_utc(request.end)
        if end <= start:
            raise InvalidRangeError(f"End ({end.isoformat()}) must be after start ({start.isoformat()})")

        floor = self.horizon_floor(request.retention_horizon_days)
        if floor is not None and start < floor:
            if self._settings.plan.strict_retention_horizon:
                raise InvalidRangeError(
                    f"Start ({start.isoformat()}) is before the plan's retention horizon "
                    f"({floor.isoformat()})"
                )
            logger.info(
                "Moving start of %s query for site %s forward to retention horizon %s",
                type(request).__name__,
                request.site_id,
                floor.isoformat(),
            )
            # A range entirely beyond the horizon becomes empty
            start = min(floor, end)
        return start, end, floor

    def _goal(self, goal_event: Optional[str]) -> str:
        goal = self._settings.analytics.goal_event if goal_event is None else goal_event
        if not goal.strip():
            raise InvalidRangeError("Goal event name must not be empty")
        return goal

    def _lookback(self, lookback_window_days: Optional[int]) -> int:
        lookback = lookback_window_days
        if lookback is None:
            lookback = self._settings.analytics.lookback_window_days
        if lookback < 0:
            raise InvalidRangeError(f"Lookback window must not be negative (got {lookback})")
        return lookback

    def _offsets(self, day_offsets: Optional[list[int]]) -> list[int]:
        offsets = self._settings.analytics.retention_day_offsets if day_offsets is None else day_offsets
        negative = [o for o in offsets if o < 0]
        if negative:
            raise InvalidRangeError(f"Retention day offsets must not be negative (got {negative})")
        return sorted(set(offsets))

    def _journey_builder(self, max_transitions: Optional[int], collapse_self_loops: bool) -> JourneyGraphBuilder:
        analytics = self._settings.analytics
        limit = analytics.max_transitions if max_transitions is None else max_transitions
        if limit < 0:
            raise InvalidRangeError(f"Transition limit must not be negative (got {limit})")
        return JourneyGraphBuilder(
            max_transitions=limit or None,
            top_paths_limit=analytics.top_paths_limit,
            max_path_hops=analytics.max_path_hops,
            collapse_self_loops=collapse_self_loops,
            pageview_events=analytics.pageview_events,
        )

    def _as_of(self, end: datetime) -> date:
        """Last fully or partially observed day of the range."""
        return min(end - timedelta(microseconds=1), as_utc(self._clock())).date()

    @staticmethod
    def _snapshot_start(start: datetime, lookback_days: int, floor: datetime | None) -> datetime:
        snapshot_start = start - timedelta(days=lookback_days)
        if floor is not None and snapshot_start < floor:
            return min(floor, start)
        return snapshot_start

    @staticmethod
    def _params(request: AnalyticsRequest, start: datetime, end: datetime, **extra) -> dict:
        return {
            "site_id": request.site_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            **extra,
        }

    # ==========================================================================
    # Retrieval and caching
    # ==========================================================================

    def _load_with_first_seen(
        self, site_id: str, start: datetime, end: datetime
    ) -> tuple[list[Event], dict[str, datetime]]:
        events = self._event_log.query_events(site_id, start, end)
        visitors = sorted({e.visitor_id for e in events})
        first_seen = self._event_log.first_seen(site_id, start, visitors) if visitors else {}
        return events, first_seen

    def _fetch(self, load: Callable):
        """
        Run an event log call under the query deadline.

        Raises:
            UpstreamUnavailableError: If the call fails or exceeds the deadline
        """
        timeout = self._settings.analytics.query_timeout_seconds
        future = self._executor.submit(load)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as e:
            future.cancel()
            logger.error("Event log query exceeded %.1fs deadline", timeout)
            raise UpstreamUnavailableError(
                f"Event log did not respond within {timeout:g}s", cause=e
            ) from e
        except Exception as e:
            logger.error("Event log query failed: %s", e)
            raise UpstreamUnavailableError(f"Event log query failed: {e}", cause=e) from e

    def _cached(
        self,
        analytic: str,
        params: dict,
        model: type[ReportT],
        compute: Callable[[], ReportT],
    ) -> ReportT:
        logger.info(
            "%s query for site %s [%s, %s)",
            analytic,
            params["site_id"],
            params["start"],
            params["end"],
        )
        if self._cache is None:
            return compute()

        key = cache_key(analytic, params)
        try:
            hit = self._cache.get(key)
        except Exception as e:
            logger.warning("Report cache read failed for %s: %s", key, e)
            hit = None
        if hit is not None:
            try:
                report = model.model_validate(hit)
                logger.debug("Report cache hit: %s", key)
                return report
            except ValidationError:
                logger.warning("Discarding stale cache entry %s", key)

        report = compute()
        try:
            self._cache.set(
                key,
                report.model_dump(mode="json", by_alias=True),
                ttl_seconds=self._settings.valkey.cache_ttl_seconds,
            )
        except Exception as e:
            logger.warning("Report cache write failed for %s: %s", key, e)
        return report
