# ==============================================================================
# PostgreSQL Event Log
# ==============================================================================
"""
PostgreSQL implementation of the EventLog interface.

Reads from the `{schema}.events` table written by the ingestion side:

    id, site_id, visitor_id, session_id, event_name, url, referrer,
    utm_source, utm_medium, utm_campaign, created_at, properties (jsonb)

All queries are parameterized and bounded by a server-side statement timeout.
Transient connection errors are retried with exponential backoff; anything
else propagates so the caller can fail the whole query.
"""

import logging
from datetime import datetime
from uuid import uuid4

import psycopg2
import psycopg2.extras
from pydantic import ValidationError

from sitelens.base.event_log import EventFilters, EventLog
from sitelens.core.models import Event
from sitelens.utils.config import Settings, get_settings
from sitelens.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_light, retry_query

logger = logging.getLogger(__name__)

# Connection timeout
CONNECT_TIMEOUT = 10

# Rows fetched per round trip from the server-side cursor
FETCH_SIZE = 5000

EVENT_COLUMNS = (
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
)


def _add_connect_timeout(conn_string: str) -> str:
    """Add connect_timeout to connection string if not present."""
    if "connect_timeout" not in conn_string:
        separator = "&" if "?" in conn_string else "?"
        return f"{conn_string}{separator}connect_timeout={CONNECT_TIMEOUT}"
    return conn_string


def row_to_event(row: dict) -> Event | None:
    """
    Convert a database row to an Event.

    Rows that cannot be validated are skipped with a warning rather than
    failing the whole query.
    """
    data = {key: row.get(key) for key in EVENT_COLUMNS}
    for key in ("id", "site_id", "visitor_id", "session_id"):
        if data[key] is not None:
            data[key] = str(data[key])
    data["session_id"] = data["session_id"] or ""
    data["url"] = data["url"] or ""
    data["event_name"] = data["event_name"] or "pageview"
    try:
        return Event.model_validate(data)
    except ValidationError as e:
        logger.warning("Skipping malformed event row %s: %s", data.get("id"), e.errors()[0]["msg"])
        return None


class PostgreSQLEventLog(EventLog):
    """
    PostgreSQL implementation of EventLog.

    Uses a named (server-side) cursor so large windows stream in chunks of
    FETCH_SIZE rows, while still materializing the complete result before
    returning it.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the event log.

        Args:
            settings: Application settings. If None, uses get_settings().
        """
        self._settings = settings or get_settings()
        self._conn: psycopg2.extensions.connection | None = None
        self._schema = self._settings.postgres.schema_name

    @property
    def schema(self) -> str:
        """Get the database schema name."""
        return self._schema

    def _open(self) -> None:
        conn_string = _add_connect_timeout(self._settings.postgres.connection_string)
        timeout_ms = self._settings.postgres.statement_timeout_ms
        self._conn = psycopg2.connect(conn_string, options=f"-c statement_timeout={timeout_ms}")
        self._conn.set_session(readonly=True, autocommit=False)

    @retry_query(POSTGRES_RETRY_EXCEPTIONS, logger)
    def connect(self) -> None:
        """Establish connection to PostgreSQL."""
        self._open()
        logger.info("PostgreSQLEventLog connected (schema=%s)", self._schema)

    def _require_connection(self) -> psycopg2.extensions.connection:
        """Return the open connection, reopening it if the server dropped it."""
        if self._conn is None:
            raise RuntimeError("PostgreSQL connection not established. Call connect() first.")
        if self._conn.closed:
            logger.info("PostgreSQLEventLog reconnecting")
            self._open()
        return self._conn

    def rollback(self) -> None:
        """End the read transaction."""
        if self._conn:
            try:
                self._conn.rollback()
            except psycopg2.Error as e:
                logger.debug("Rollback failed: %s", e)

    @staticmethod
    def _where(site_id: str, start: datetime, end: datetime, filters: EventFilters | None) -> tuple[str, list]:
        clauses = ["site_id = %s", "created_at >= %s", "created_at < %s"]
        params: list = [site_id, start, end]
        if filters is not None and filters.event_names is not None:
            clauses.append("event_name = ANY(%s)")
            params.append(list(filters.event_names))
        if filters is not None and filters.visitor_ids is not None:
            clauses.append("visitor_id = ANY(%s)")
            params.append(list(filters.visitor_ids))
        return " AND ".join(clauses), params

    @retry_query(POSTGRES_RETRY_EXCEPTIONS, logger)
    def query_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        filters: EventFilters | None = None,
    ) -> list[Event]:
        """
        Fetch a site's events in [start, end).

        Returns:
            Events in no particular order; malformed rows are skipped
        """
        conn = self._require_connection()
        where, params = self._where(site_id, start, end, filters)
        sql = f"SELECT {', '.join(EVENT_COLUMNS)} FROM {self._schema}.events WHERE {where}"

        events: list[Event] = []
        try:
            with conn.cursor(
                name=f"sitelens_events_{uuid4().hex}", cursor_factory=psycopg2.extras.RealDictCursor
            ) as cur:
                cur.itersize = FETCH_SIZE
                cur.execute(sql, params)
                for row in cur:
                    event = row_to_event(row)
                    if event is not None:
                        events.append(event)
        finally:
            self.rollback()

        logger.debug("Fetched %d events for site %s", len(events), site_id)
        return events

    @retry_query(POSTGRES_RETRY_EXCEPTIONS, logger)
    def count_events(
        self,
        site_id: str,
        start: datetime,
        end: datetime,
        event_name: str | None = None,
    ) -> int:
        """Count a site's events in [start, end)."""
        conn = self._require_connection()
        filters = EventFilters(event_names=[event_name]) if event_name else None
        where, params = self._where(site_id, start, end, filters)
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {self._schema}.events WHERE {where}", params)
                row = cur.fetchone()
        finally:
            self.rollback()
        return int(row[0]) if row else 0

    @retry_query(POSTGRES_RETRY_EXCEPTIONS, logger)
    def first_seen(
        self,
        site_id: str,
        end: datetime,
        visitor_ids: list[str] | None = None,
    ) -> dict[str, datetime]:
        """Find each visitor's first-ever event time with a single aggregate query."""
        conn = self._require_connection()
        sql = f"SELECT visitor_id, MIN(created_at) FROM {self._schema}.events WHERE site_id = %s AND created_at < %s"
        params: list = [site_id, end]
        if visitor_ids is not None:
            sql += " AND visitor_id = ANY(%s)"
            params.append(list(visitor_ids))
        sql += " GROUP BY visitor_id"
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        finally:
            self.rollback()
        return {str(visitor_id): first for visitor_id, first in rows if first is not None}

    def close(self) -> None:
        """Close connection and release resources."""
        if self._conn:
            try:
                self._conn.close()
                logger.info("PostgreSQLEventLog connection closed")
            except Exception as e:
                logger.warning("Error closing connection: %s", e)
            finally:
                self._conn = None


def check_postgresql_connection(settings: Settings | None = None) -> bool:
    """
    Check if PostgreSQL is reachable.

    Args:
        settings: Application settings. If None, uses get_settings().

    Returns:
        True if connection successful, False otherwise
    """
    settings = settings or get_settings()

    @retry_light(POSTGRES_RETRY_EXCEPTIONS, logger)
    def _ping() -> None:
        conn = psycopg2.connect(_add_connect_timeout(settings.postgres.connection_string))
        conn.close()

    try:
        _ping()
        return True
    except POSTGRES_RETRY_EXCEPTIONS:
        return False
