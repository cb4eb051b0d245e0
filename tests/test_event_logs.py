# ==============================================================================
# Tests for Event Log Adapters
# ==============================================================================
"""
Unit tests for the in-memory, CSV and PostgreSQL event logs.

Tests cover:
- Range and filter semantics ([start, end), event names, visitors)
- first_seen over the full history
- CSV loading with Polars, including malformed and missing data
- PostgreSQL row conversion and query construction (psycopg2 mocked)
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from sitelens.base import EventFilters
from sitelens.infrastructure.repositories import CsvEventLog, InMemoryEventLog, PostgreSQLEventLog
from sitelens.infrastructure.repositories.postgresql import row_to_event
from sitelens.utils.config import PostgresSettings, Settings

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

CSV_HEADER = "id,site_id,visitor_id,session_id,event_name,url,referrer,utm_source,utm_medium,utm_campaign,created_at,properties"


# ==============================================================================
# InMemoryEventLog
# ==============================================================================


class TestInMemoryEventLog:
    @pytest.fixture()
    def log(self, make_event):
        return InMemoryEventLog(
            [
                make_event("a", minutes=0),
                make_event("a", minutes=10, event_name="conversion"),
                make_event("b", minutes=20),
                make_event("b", minutes=30, site_id="other-site"),
            ]
        )

    def test_range_is_half_open(self, log):
        events = log.query_events("site-1", T0, T0 + timedelta(minutes=20))
        assert [e.visitor_id for e in events] == ["a", "a"]

    def test_site_isolation(self, log):
        events = log.query_events("other-site", T0, T0 + timedelta(days=1))
        assert len(events) == 1

    def test_filters(self, log):
        window = (T0, T0 + timedelta(days=1))
        assert len(log.query_events("site-1", *window, EventFilters(event_names=["conversion"]))) == 1
        assert len(log.query_events("site-1", *window, EventFilters(visitor_ids=["b"]))) == 1

    def test_naive_bounds_treated_as_utc(self, log):
        start = datetime(2024, 1, 1, 12, 0)
        assert len(log.query_events("site-1", start, start + timedelta(hours=1))) == 3

    def test_count_events(self, log):
        window = (T0, T0 + timedelta(days=1))
        assert log.count_events("site-1", *window) == 3
        assert log.count_events("site-1", *window, event_name="conversion") == 1

    def test_first_seen(self, make_event):
        log = InMemoryEventLog(
            [
                make_event("a", days=-30),
                make_event("a", days=0),
                make_event("b", days=1),
            ]
        )
        first_seen = log.first_seen("site-1", T0 + timedelta(days=2))
        assert first_seen == {"a": T0 - timedelta(days=30), "b": T0 + timedelta(days=1)}
        assert log.first_seen("site-1", T0, visitor_ids=["b"]) == {}


# ==============================================================================
# CsvEventLog
# ==============================================================================


class TestCsvEventLog:
    def test_loads_events(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text(
            "\n".join(
                [
                    CSV_HEADER,
                    "1,s1,v1,,pageview,https://example.com/,https://www.google.com/,,,,2024-01-01T10:00:00Z,",
                    '2,s1,v1,,form_start,https://example.com/signup,,,,,2024-01-01T10:01:00Z,"{""form_id"": ""signup""}"',
                    "3,s1,v2,,pageview,/pricing,,newsletter,email,jan,2024-01-02T08:00:00+00:00,",
                ]
            )
        )
        log = CsvEventLog(path)
        events = log.events

        assert [e.id for e in events] == ["1", "2", "3"]
        assert events[0].referrer == "https://www.google.com/"
        assert events[0].created_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert events[1].form_id == "signup"
        assert (events[2].utm_source, events[2].utm_medium, events[2].utm_campaign) == (
            "newsletter",
            "email",
            "jan",
        )

    def test_optional_columns_may_be_absent(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text("id,site_id,visitor_id,created_at,url\n1,s1,v1,2024-01-01T10:00:00Z,/home\n")
        events = CsvEventLog(path).events
        assert events[0].event_name == "pageview"
        assert events[0].properties == {}

    def test_malformed_rows_skipped(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text(
            "id,site_id,visitor_id,created_at\n1,s1,v1,2024-01-01T10:00:00Z\n2,s1,v2,not-a-date\n"
        )
        events = CsvEventLog(path).events
        assert [e.id for e in events] == ["1"]

    def test_missing_required_columns(self, tmp_path):
        path = tmp_path / "events.csv"
        path.write_text("id,visitor_id\n1,v1\n")
        with pytest.raises(ValueError, match="created_at"):
            CsvEventLog(path)


# ==============================================================================
# PostgreSQLEventLog
# ==============================================================================


class TestRowToEvent:
    def test_converts_row(self):
        row = {
            "id": 17,
            "site_id": "s1",
            "visitor_id": "v1",
            "session_id": None,
            "event_name": "form_submit",
            "url": None,
            "referrer": "",
            "utm_source": None,
            "utm_medium": None,
            "utm_campaign": None,
            "created_at": datetime(2024, 1, 1, 10, 0),
            "properties": {"form_id": "contact", "step": 2},
        }
        event = row_to_event(row)
        assert event.id == "17"
        assert event.session_id == ""
        assert event.url == ""
        assert event.referrer is None
        assert event.created_at.tzinfo is not None
        assert event.properties == {"form_id": "contact", "step": "2"}

    def test_json_text_properties(self):
        row = {
            "id": "1",
            "site_id": "s1",
            "visitor_id": "v1",
            "created_at": T0,
            "properties": json.dumps({"form_id": "x"}),
        }
        assert row_to_event(row).form_id == "x"

    def test_malformed_row_skipped(self):
        assert row_to_event({"id": "1", "site_id": "s1", "visitor_id": "v1", "created_at": "yesterday"}) is None


class TestPostgreSQLEventLog:
    @pytest.fixture()
    def settings(self):
        return Settings(postgres=PostgresSettings(schema_name="analytics", statement_timeout_ms=5000))

    @pytest.fixture()
    def conn(self):
        conn = MagicMock()
        conn.closed = 0
        return conn

    def test_requires_connect(self, settings):
        log = PostgreSQLEventLog(settings)
        with pytest.raises(RuntimeError, match="connect"):
            log.count_events("s1", T0, T0 + timedelta(days=1))

    def test_connect_sets_statement_timeout(self, settings, conn):
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn) as connect:
            PostgreSQLEventLog(settings).connect()

        conn_string = connect.call_args.args[0]
        assert "connect_timeout=" in conn_string
        assert connect.call_args.kwargs["options"] == "-c statement_timeout=5000"
        conn.set_session.assert_called_once_with(readonly=True, autocommit=False)

    def test_query_events(self, settings, conn):
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.__iter__.return_value = iter(
            [
                {"id": 1, "site_id": "s1", "visitor_id": "v1", "created_at": T0, "event_name": "pageview"},
                {"id": 2, "site_id": "s1", "visitor_id": "v1", "created_at": "garbage"},
            ]
        )
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn):
            log = PostgreSQLEventLog(settings)
            log.connect()
            events = log.query_events(
                "s1", T0, T0 + timedelta(days=1), EventFilters(event_names=["pageview"])
            )

        assert [e.id for e in events] == ["1"]
        sql, params = cursor.execute.call_args.args
        assert "FROM analytics.events" in sql
        assert "event_name = ANY(%s)" in sql
        assert params == ["s1", T0, T0 + timedelta(days=1), ["pageview"]]
        conn.rollback.assert_called()

    def test_each_query_uses_its_own_named_cursor(self, settings, conn):
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.__iter__.return_value = iter([])
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn):
            log = PostgreSQLEventLog(settings)
            log.connect()
            log.query_events("s1", T0, T0 + timedelta(days=1))
            log.query_events("s1", T0, T0 + timedelta(days=1))

        names = [c.kwargs["name"] for c in conn.cursor.call_args_list]
        assert len(names) == 2
        assert names[0] != names[1]
        assert all(name.startswith("sitelens_events_") for name in names)

    def test_count_events(self, settings, conn):
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.fetchone.return_value = (42,)
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn):
            log = PostgreSQLEventLog(settings)
            log.connect()
            assert log.count_events("s1", T0, T0 + timedelta(days=1)) == 42

    def test_first_seen_single_query(self, settings, conn):
        cursor = conn.cursor.return_value.__enter__.return_value
        cursor.fetchall.return_value = [("v1", T0), ("v2", T0 + timedelta(days=1))]
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn):
            log = PostgreSQLEventLog(settings)
            log.connect()
            result = log.first_seen("s1", T0 + timedelta(days=2), ["v1", "v2"])

        assert result == {"v1": T0, "v2": T0 + timedelta(days=1)}
        sql = cursor.execute.call_args.args[0]
        assert "MIN(created_at)" in sql and "GROUP BY visitor_id" in sql

    def test_reconnects_closed_connection(self, settings, conn):
        fresh = MagicMock()
        fresh.closed = 0
        fresh.cursor.return_value.__enter__.return_value.fetchone.return_value = (0,)
        with patch(
            "sitelens.infrastructure.repositories.postgresql.psycopg2.connect", side_effect=[conn, fresh]
        ):
            log = PostgreSQLEventLog(settings)
            log.connect()
            conn.closed = 1
            assert log.count_events("s1", T0, T0 + timedelta(days=1)) == 0

    def test_close(self, settings, conn):
        with patch("sitelens.infrastructure.repositories.postgresql.psycopg2.connect", return_value=conn):
            log = PostgreSQLEventLog(settings)
            log.connect()
            log.close()
        conn.close.assert_called_once()
