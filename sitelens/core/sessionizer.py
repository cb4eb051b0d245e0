# ==============================================================================
# Sessionizer - Pure Domain Logic
# ==============================================================================
"""
Pure session grouping logic with no external dependencies.

This module contains the domain logic for turning raw events into sessions:
- Session timeout detection
- Session creation and boundary assignment
- Grouping a site's events by visitor

Sessions are recomputed on demand for every query and never persisted, so
the logic must be deterministic: re-running on the same event set always
yields the same session boundaries and identifiers.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta

from sitelens.core.models import Event, Session

DEFAULT_TIMEOUT_MINUTES = 30


class Sessionizer:
    """
    Groups a visitor's events into time-bounded sessions.

    A new session starts at the first event, and again whenever the gap
    to the previous event exceeds the inactivity timeout. A gap exactly
    equal to the timeout stays in the same session.

    Session ids take the form "{visitor_id}_{session_num}" with session
    numbers starting at 1 in chronological order.
    """

    def __init__(self, timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES):
        """
        Initialize sessionizer.

        Args:
            timeout_minutes: Session inactivity timeout in minutes.
                            A new session starts if the gap between events
                            exceeds this timeout.
        """
        if timeout_minutes <= 0:
            raise ValueError("timeout_minutes must be positive")
        self.timeout = timedelta(minutes=timeout_minutes)

    def is_session_expired(self, last_activity: datetime | None, event_time: datetime) -> bool:
        """
        Check if the open session has expired at the given event time.

        Args:
            last_activity: Timestamp of the previous event, or None if no session is open
            event_time: Timestamp of the new event

        Returns:
            True if a new session must be started
        """
        if last_activity is None:
            return True
        return event_time - last_activity > self.timeout

    def sessionize(self, events: Iterable[Event]) -> list[Session]:
        """
        Split one visitor's events into sessions.

        Input may be unsorted. Every input event appears in exactly one
        output session.

        Args:
            events: Events for a single visitor

        Returns:
            Sessions in chronological order (empty list for empty input)
        """
        ordered = sorted(events, key=lambda e: e.sort_key)
        if not ordered:
            return []

        visitor_id = ordered[0].visitor_id
        sessions: list[Session] = []
        current: list[Event] = []
        last_activity: datetime | None = None

        for event in ordered:
            if self.is_session_expired(last_activity, event.created_at) and current:
                sessions.append(self._create_session(visitor_id, len(sessions) + 1, current))
                current = []
            current.append(event)
            last_activity = event.created_at

        sessions.append(self._create_session(visitor_id, len(sessions) + 1, current))
        return sessions

    def sessionize_all(self, events: Iterable[Event]) -> list[Session]:
        """
        Sessionize a multi-visitor event set.

        Args:
            events: Events for any number of visitors

        Returns:
            All sessions ordered by start time, then visitor id
        """
        by_visitor: dict[str, list[Event]] = defaultdict(list)
        for event in events:
            by_visitor[event.visitor_id].append(event)

        sessions: list[Session] = []
        for visitor_id in sorted(by_visitor):
            sessions.extend(self.sessionize(by_visitor[visitor_id]))

        sessions.sort(key=lambda s: (s.started_at, s.visitor_id, s.session_id))
        return sessions

    @staticmethod
    def _create_session(visitor_id: str, session_num: int, events: list[Event]) -> Session:
        return Session(
            session_id=f"{visitor_id}_{session_num}",
            visitor_id=visitor_id,
            events=list(events),
        )
