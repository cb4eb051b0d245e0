# ==============================================================================
# Tests for Analytics CLI Commands
# ==============================================================================
"""
End-to-end tests for the analytics commands against a CSV event export.

Tests cover:
- Human-readable and JSON output for each command
- Empty reports rendering without errors
- Exit code 2 for invalid ranges and parameters
- Exit code 1 when the event log cannot be opened
"""

import json

import pytest
from typer.testing import CliRunner

from sitelens.app import app

runner = CliRunner()

HEADER = "id,site_id,visitor_id,session_id,event_name,url,referrer,utm_source,utm_medium,utm_campaign,created_at,properties"

# v1 arrives from Google, views pricing, signs up and converts.
# v2 arrives directly on Jan 5 and comes back the next day.
ROWS = [
    "1,s1,v1,,pageview,https://example.com/home,https://www.google.com/,,,,2024-01-05T10:00:00Z,",
    "2,s1,v1,,pageview,https://example.com/pricing,,,,,2024-01-05T10:02:00Z,",
    '3,s1,v1,,form_start,https://example.com/pricing,,,,,2024-01-05T10:03:00Z,"{""form_id"": ""signup""}"',
    '4,s1,v1,,form_submit,https://example.com/pricing,,,,,2024-01-05T10:04:00Z,"{""form_id"": ""signup""}"',
    "5,s1,v1,,conversion,https://example.com/welcome,,,,,2024-01-05T10:05:00Z,",
    "6,s1,v2,,pageview,https://example.com/home,,,,,2024-01-05T11:00:00Z,",
    "7,s1,v2,,pageview,https://example.com/home,,,,,2024-01-06T11:00:00Z,",
]

JANUARY = ["--start", "2024-01-01", "--end", "2024-01-31"]


@pytest.fixture()
def events_csv(tmp_path):
    path = tmp_path / "events.csv"
    path.write_text("\n".join([HEADER, *ROWS]) + "\n")
    return path


def _run(command, events_csv, *args):
    return runner.invoke(app, [command, "--site", "s1", "--csv", str(events_csv), *JANUARY, *args])


# ==============================================================================
# Attribution
# ==============================================================================


class TestAttributionCommand:
    def test_table_output(self, events_csv):
        result = _run("attribution", events_csv)
        assert result.exit_code == 0, result.output
        assert "Conversions:" in result.output
        assert "Organic Search" in result.output

    def test_json_output(self, events_csv):
        result = _run("attribution", events_csv, "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["summary"]["total_conversions"] == 1
        assert data["firstTouch"][0]["channel"] == "Organic Search"
        assert data["lastTouch"][0]["channel"] == "Organic Search"

    def test_unknown_goal_is_empty(self, events_csv):
        result = _run("attribution", events_csv, "--goal", "purchase")
        assert result.exit_code == 0
        assert "No conversions found" in result.output

    def test_negative_lookback(self, events_csv):
        result = _run("attribution", events_csv, "--lookback=-1")
        assert result.exit_code == 2


# ==============================================================================
# Journeys
# ==============================================================================


class TestJourneysCommand:
    def test_table_output(self, events_csv):
        result = _run("journeys", events_csv)
        assert result.exit_code == 0, result.output
        assert "Top Transitions" in result.output
        assert "/pricing" in result.output

    def test_json_output(self, events_csv):
        result = _run("journeys", events_csv, "--json")
        data = json.loads(result.stdout)
        assert data["transitions"] == [{"from": "/home", "to": "/pricing", "count": 1}]
        assert data["stats"]["total_sessions"] == 3
        assert {"page": "/home", "count": 3} in data["entryPages"]


# ==============================================================================
# Retention
# ==============================================================================


class TestRetentionCommand:
    def test_table_output(self, events_csv):
        result = _run("retention", events_csv, "--offsets", "1,7")
        assert result.exit_code == 0, result.output
        assert "2024-01-05" in result.output
        assert "Day 1 average" in result.output

    def test_json_output(self, events_csv):
        result = _run("retention", events_csv, "--offsets", "1", "--json")
        data = json.loads(result.stdout)
        cohort = data["cohorts"][0]
        assert cohort["cohort_date"] == "2024-01-05"
        assert cohort["cohort_size"] == 2
        assert cohort["retention"] == [{"day": 1, "retained": 1, "rate": 0.5}]

    def test_invalid_offsets(self, events_csv):
        result = _run("retention", events_csv, "--offsets", "1,week")
        assert result.exit_code == 2

    def test_negative_offsets(self, events_csv):
        result = _run("retention", events_csv, "--offsets=-7", "--json")
        assert result.exit_code == 2
        assert json.loads(result.stdout)["retryable"] is False


# ==============================================================================
# Forms
# ==============================================================================


class TestFormsCommand:
    def test_table_output(self, events_csv):
        result = _run("forms", events_csv)
        assert result.exit_code == 0, result.output
        assert "signup" in result.output

    def test_json_output(self, events_csv):
        data = json.loads(_run("forms", events_csv, "--json").stdout)
        assert data["forms"] == [
            {"formId": "signup", "views": 1, "submissions": 1, "abandons": 0, "conversionRate": 100.0}
        ]

    def test_empty_range(self, events_csv):
        result = runner.invoke(
            app, ["forms", "--site", "s1", "--csv", str(events_csv), "--start", "2023-06-01", "--end", "2023-06-30"]
        )
        assert result.exit_code == 0
        assert "No form activity found" in result.output


# ==============================================================================
# Dashboard
# ==============================================================================


class TestDashboardCommand:
    def test_box_output(self, events_csv):
        result = _run("dashboard", events_csv)
        assert result.exit_code == 0, result.output
        assert "SITELENS DASHBOARD" in result.output
        assert "Organic Search" in result.output
        assert "signup" in result.output

    def test_json_output(self, events_csv):
        data = json.loads(_run("dashboard", events_csv, "--json").stdout)
        assert set(data) == {"attribution", "journeys", "retention", "forms"}
        assert data["attribution"]["summary"]["total_conversions"] == 1
        assert data["forms"]["forms"][0]["formId"] == "signup"


# ==============================================================================
# Errors
# ==============================================================================


class TestErrors:
    def test_end_before_start(self, events_csv):
        result = runner.invoke(
            app, ["forms", "--site", "s1", "--csv", str(events_csv), "--start", "2024-01-31", "--end", "2024-01-01"]
        )
        assert result.exit_code == 2

    def test_unknown_preset(self, events_csv):
        result = runner.invoke(app, ["forms", "--site", "s1", "--csv", str(events_csv), "--range", "2w"])
        assert result.exit_code == 2

    def test_preset_with_explicit_bounds(self, events_csv):
        result = runner.invoke(
            app, ["forms", "--site", "s1", "--csv", str(events_csv), "--range", "7d", "--start", "2024-01-01"]
        )
        assert result.exit_code == 2

    def test_invalid_date(self, events_csv):
        result = runner.invoke(
            app, ["forms", "--site", "s1", "--csv", str(events_csv), "--start", "January 1st"]
        )
        assert result.exit_code == 2

    def test_missing_site(self, events_csv):
        result = runner.invoke(app, ["forms", "--csv", str(events_csv)])
        assert result.exit_code == 2

    def test_missing_csv_is_retryable(self, tmp_path):
        result = runner.invoke(
            app, ["forms", "--site", "s1", "--csv", str(tmp_path / "missing.csv"), *JANUARY, "--json"]
        )
        assert result.exit_code == 1
        assert json.loads(result.stdout)["retryable"] is True


# ==============================================================================
# Config
# ==============================================================================


class TestConfigShow:
    def test_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert {"postgresql", "valkey", "analytics", "plan", "log_level"} <= set(data)
        assert "connectivity" not in data

    def test_human_readable(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Valkey report cache" in result.output
        assert "Plan" in result.output
