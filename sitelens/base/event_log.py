# ==============================================================================
# Event Log Abstract Base Class
# ==============================================================================
"""
Read-side contract for the append-only event store.

The event log is owned by the ingestion side of the platform; this package
only reads from it. Implementations in infrastructure/ handle the storage
specifics (PostgreSQL, in-memory, CSV files).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from pydantic import BaseModel

from sitelens.core.models import Event

# Lower bound used when a query needs a visitor's entire history
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class EventFilters(BaseModel):
    """Optional narrowing of an event query."""

    event_names: list[str] | None = None
    visitor_ids: list[str] | None = None

    def matches(self, event: Event) -> bool:
        if self.event_names is not None and event.event_name not in self.event_names:
            return False
        if self.visitor_ids is not None and event.visitor_id not in self.visitor_ids:
            return False
        return True


class EventLog(ABC):
    """Queryable, append-only store of raw events."""

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the data store."""
        ...

    @abstractmethod
    def query_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        filters: EventFilters | None = None,
    ) -> list[Event]:
        """
        Fetch events for a site.

        Args:
            site_id: Site identifier
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at
            filters: Optional event name / visitor filters

        Returns:
            All matching events, in no particular order. Implementations must
            return the complete result or raise; never a partial batch.
        """
        ...

    @abstractmethod
    def count_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        event_name: str | None = None,
    ) -> int:
        """
        Count events for a site in [start, end).

        Args:
            site_id: Site identifier
            start: Inclusive lower bound on created_at
            end: Exclusive upper bound on created_at
            event_name: Only count events with this name

        Returns:
            Count of matching events
        """
        ...

    def first_seen(
        self,
        site_id: str,
        end: datetime,
        visitor_ids: list[str] | None = None,
    ) -> dict[str, datetime]:
        """
        Find each visitor's first-ever event time before ``end``.

        The default implementation scans the full history; adapters backed by
        a database should override it with an aggregate query.

        Returns:
            Dict mapping visitor_id to first event time
        """
        filters = EventFilters(visitor_ids=visitor_ids) if visitor_ids is not None else None
        result: dict[str, datetime] = {}
        for event in self.query_events(site_id, EPOCH, end, filters):
            known = result.get(event.visitor_id)
            if known is None or event.created_at < known:
                result[event.visitor_id] = event.created_at
        return result

    @abstractmethod
    def close(self) -> None:
        """Close connection and release resources."""
        ...
