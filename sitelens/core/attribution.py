# ==============================================================================
# Attribution Engine
# ==============================================================================
"""
First-touch and last-touch conversion attribution.

For every conversion the visitor's touchpoints inside the lookback window
are collected (the conversion event itself is never a candidate):
- first-touch credits the earliest candidate
- last-touch credits the latest candidate strictly before the conversion

A conversion without a qualifying touchpoint is credited to "Direct" in
that model. Each conversion adds exactly one credit to each model, and
repeated conversions by the same visitor are attributed independently.
"""

import logging
from bisect import bisect_left, bisect_right
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sitelens.core.models import (
    AttributionReport,
    AttributionSummary,
    CampaignStat,
    ChannelStat,
    Conversion,
    ConversionPath,
    Event,
    Touchpoint,
)
from sitelens.core.sessionizer import Sessionizer
from sitelens.core.touchpoints import DIRECT, is_touchpoint, to_touchpoint

logger = logging.getLogger(__name__)

DEFAULT_GOAL_EVENT = "conversion"
DEFAULT_LOOKBACK_DAYS = 90
PATH_SEPARATOR = " → "
MAX_CONVERSION_PATHS = 10


@dataclass
class _ChannelTally:
    conversions: int = 0
    campaigns: set[str] = field(default_factory=set)


class AttributionEngine:
    """
    Computes first-touch and last-touch credit per channel.

    Touchpoints are derived from events carrying UTM parameters or an
    external referrer, and from the entry event of every session, so the
    engine needs each visitor's events from the lookback period as well as
    from the reporting range.
    """

    def __init__(
        self,
        goal_event: str = DEFAULT_GOAL_EVENT,
        lookback_window_days: int = DEFAULT_LOOKBACK_DAYS,
        sessionizer: Sessionizer | None = None,
    ):
        if lookback_window_days < 0:
            raise ValueError("lookback_window_days must not be negative")
        self.goal_event = goal_event
        self.lookback = timedelta(days=lookback_window_days)
        self._sessionizer = sessionizer or Sessionizer()

    def collect_touchpoints(self, events: Iterable[Event]) -> dict[str, list[Touchpoint]]:
        """
        Derive touchpoints per visitor, sorted by time then event id.

        Args:
            events: Events for any number of visitors

        Returns:
            Dict mapping visitor_id to its ordered touchpoints
        """
        touchpoints: dict[str, list[Touchpoint]] = defaultdict(list)
        for session in self._sessionizer.sessionize_all(events):
            entry_id = session.events[0].id
            for event in session.events:
                if is_touchpoint(event, is_session_entry=event.id == entry_id):
                    touchpoints[session.visitor_id].append(to_touchpoint(event))

        for visitor_touchpoints in touchpoints.values():
            visitor_touchpoints.sort(key=lambda t: (t.occurred_at, t.event_id))
        return dict(touchpoints)

    def collect_conversions(
        self,
        events: Iterable[Event],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Conversion]:
        """
        Find goal events, optionally restricted to [start, end).

        Returns:
            Conversions ordered by time, then event id
        """
        conversions = [
            Conversion(
                visitor_id=e.visitor_id,
                session_id=e.session_id,
                occurred_at=e.created_at,
                event_id=e.id,
            )
            for e in events
            if e.event_name == self.goal_event
            and (start is None or e.created_at >= start)
            and (end is None or e.created_at < end)
        ]
        conversions.sort(key=lambda c: (c.occurred_at, c.event_id))
        return conversions

    def candidates(self, conversion: Conversion, touchpoints: list[Touchpoint]) -> list[Touchpoint]:
        """
        Touchpoints eligible for credit on a conversion.

        Args:
            conversion: The conversion being attributed
            touchpoints: The visitor's touchpoints, sorted by time

        Returns:
            Touchpoints within [conversion - lookback, conversion], excluding
            the conversion event itself, in time order
        """
        times = [t.occurred_at for t in touchpoints]
        lo = bisect_left(times, conversion.occurred_at - self.lookback)
        hi = bisect_right(times, conversion.occurred_at)
        return [t for t in touchpoints[lo:hi] if t.event_id != conversion.event_id]

    def attribute(
        self,
        events: Iterable[Event],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AttributionReport:
        """
        Build the attribution report.

        Args:
            events: Events covering the reporting range plus the lookback period
            start: Only conversions at or after this time are counted
            end: Only conversions before this time are counted

        Returns:
            AttributionReport with firstTouch/lastTouch rankings, campaigns
            and the most common conversion paths
        """
        events = list(events)
        touchpoints = self.collect_touchpoints(events)
        conversions = self.collect_conversions(events, start, end)

        first_touch: dict[tuple[str, str], _ChannelTally] = defaultdict(_ChannelTally)
        last_touch: dict[tuple[str, str], _ChannelTally] = defaultdict(_ChannelTally)
        campaigns: dict[tuple[str, str | None, str | None], int] = defaultdict(int)
        paths: dict[str, list[int]] = defaultdict(lambda: [0, 0])

        for conversion in conversions:
            eligible = self.candidates(conversion, touchpoints.get(conversion.visitor_id, []))
            prior = [t for t in eligible if t.occurred_at < conversion.occurred_at]

            first = eligible[0] if eligible else None
            last = prior[-1] if prior else None

            self._credit(first_touch, first)
            self._credit(last_touch, last)

            if last is not None and last.campaign:
                campaigns[(last.campaign, last.source, last.medium)] += 1

            path = self._path(eligible)
            paths[path][0] += 1
            paths[path][1] += len(eligible)

        logger.debug(
            "Attributed %d conversions across %d visitors",
            len(conversions),
            len(touchpoints),
        )

        return AttributionReport(
            summary=AttributionSummary(
                total_conversions=len(conversions),
                converting_visitors=len({c.visitor_id for c in conversions}),
            ),
            first_touch=self._rank(first_touch),
            last_touch=self._rank(last_touch),
            campaigns=[
                CampaignStat(campaign=campaign, source=source, medium=medium, conversions=count)
                for (campaign, source, medium), count in sorted(
                    campaigns.items(), key=lambda item: (-item[1], item[0][0], item[0][1] or "")
                )
            ],
            paths=[
                ConversionPath(
                    path=path,
                    conversions=count,
                    avg_touchpoints=round(total / count, 2),
                )
                for path, (count, total) in sorted(paths.items(), key=lambda item: (-item[1][0], item[0]))[
                    :MAX_CONVERSION_PATHS
                ]
            ],
        )

    @staticmethod
    def _credit(tally: dict[tuple[str, str], _ChannelTally], touchpoint: Touchpoint | None) -> None:
        if touchpoint is None:
            tally[DIRECT].conversions += 1
            return
        entry = tally[(touchpoint.channel, touchpoint.medium)]
        entry.conversions += 1
        if touchpoint.campaign:
            entry.campaigns.add(touchpoint.campaign)

    @staticmethod
    def _rank(tally: dict[tuple[str, str], _ChannelTally]) -> list[ChannelStat]:
        """Sort by conversions descending, ties by channel then medium ascending."""
        return [
            ChannelStat(
                channel=channel,
                medium=medium,
                conversions=entry.conversions,
                campaigns=len(entry.campaigns),
            )
            for (channel, medium), entry in sorted(
                tally.items(), key=lambda item: (-item[1].conversions, item[0][0], item[0][1])
            )
        ]

    @staticmethod
    def _path(touchpoints: list[Touchpoint]) -> str:
        channels: list[str] = []
        for touchpoint in touchpoints:
            if not channels or channels[-1] != touchpoint.channel:
                channels.append(touchpoint.channel)
        return PATH_SEPARATOR.join(channels) if channels else DIRECT[0]
