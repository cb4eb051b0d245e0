# ==============================================================================
# In-Memory and CSV Event Logs
# ==============================================================================
"""
Event logs that hold a fixed event set in memory.

Provides:
- InMemoryEventLog: wraps a list of Event objects (tests, fixtures, replays)
- CsvEventLog: loads an event export from CSV using Polars
"""

import logging
from datetime import datetime
from pathlib import Path

import polars as pl
from pydantic import ValidationError

from sitelens.base.event_log import EventFilters, EventLog
from sitelens.core.models import Event, as_utc

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "id",
    "site_id",
    "visitor_id",
    "session_id",
    "event_name",
    "url",
    "referrer",
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "created_at",
    "properties",
]

REQUIRED_CSV_COLUMNS = {"id", "site_id", "visitor_id", "created_at"}


class InMemoryEventLog(EventLog):
    """EventLog over a fixed list of events."""

    def __init__(self, events: list[Event] | None = None):
        self._events: list[Event] = list(events or [])

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def connect(self) -> None:
        """Nothing to connect to."""

    def query_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        filters: EventFilters | None = None,
    ) -> list[Event]:
        start, end = as_utc(start), as_utc(end)
        return [
            e
            for e in self._events
            if e.site_id == site_id
            and start <= e.created_at < end
            and (filters is None or filters.matches(e))
        ]

    def count_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        event_name: str | None = None,
    ) -> int:
        filters = EventFilters(event_names=[event_name]) if event_name else None
        return len(self.query_events(site_id, start, end, filters))

    def close(self) -> None:
        """Nothing to release."""


class CsvEventLog(InMemoryEventLog):
    """
    EventLog loaded from a CSV export.

    Expected columns match the events table; `properties` holds a JSON
    object. Missing optional columns are treated as empty.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path)
        super().__init__(self._read_events(self._path))

    @property
    def path(self) -> Path:
        return self._path

    @staticmethod
    def _read_events(path: Path) -> list[Event]:
        """
        Read events from a CSV file using Polars.

        All columns are read as strings and validated through the Event model;
        rows that fail validation are skipped with a warning.
        """
        df = pl.read_csv(path, infer_schema_length=0)

        missing = REQUIRED_CSV_COLUMNS - set(df.columns)
        if missing:
            raise ValueError(f"{path} is missing required columns: {', '.join(sorted(missing))}")

        df = df.select([c for c in CSV_COLUMNS if c in df.columns])

        events: list[Event] = []
        skipped = 0
        for row in df.iter_rows(named=True):
            data = {k: v for k, v in row.items() if v is not None}
            try:
                events.append(Event.model_validate(data))
            except ValidationError as e:
                skipped += 1
                logger.warning("Skipping malformed row %s: %s", data.get("id"), e.errors()[0]["msg"])

        logger.info("Loaded %d events from %s (%d skipped)", len(events), path, skipped)
        return events
