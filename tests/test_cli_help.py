# ==============================================================================
# Tests for CLI Help Commands
# ==============================================================================
"""
Tests that all CLI help commands generate the expected output.

Verifies that every command and subcommand in the sitelens CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from sitelens.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly and that Typer can
introspect all command function signatures without errors.
"""

import pytest
from typer.testing import CliRunner

from sitelens.app import app

runner = CliRunner()


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `sitelens --help` output."""

    def test_exit_code(self):
        """Root --help exits successfully."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        """Root --help shows the app description."""
        result = runner.invoke(app, ["--help"])
        assert "Web analytics" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        expected_commands = [
            "attribution",
            "config",
            "dashboard",
            "forms",
            "journeys",
            "retention",
        ]
        for cmd in expected_commands:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Analytics Commands
# ==============================================================================


class TestAnalyticsHelp:
    """Tests for the analytics commands' help output."""

    @pytest.mark.parametrize(
        "command, description",
        [
            ("attribution", "first-touch and last-touch attribution"),
            ("journeys", "page transitions"),
            ("retention", "day-N retention"),
            ("forms", "form views"),
            ("dashboard", "all four analytics"),
        ],
    )
    def test_description(self, command, description):
        """Each command's --help shows its description."""
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0
        assert description in result.output

    @pytest.mark.parametrize("command", ["attribution", "journeys", "retention", "forms", "dashboard"])
    def test_common_options(self, command):
        """Every analytics command accepts the site, range, CSV and JSON options."""
        result = runner.invoke(app, [command, "--help"])
        for option in ("--site", "--range", "--start", "--end", "--csv", "--json"):
            assert option in result.output, f"{command} missing option: {option}"

    def test_attribution_options(self):
        result = runner.invoke(app, ["attribution", "--help"])
        assert "--goal" in result.output
        assert "--lookback" in result.output

    def test_journeys_options(self):
        result = runner.invoke(app, ["journeys", "--help"])
        assert "--limit" in result.output
        assert "--collapse-reloads" in result.output

    def test_retention_options(self):
        result = runner.invoke(app, ["retention", "--help"])
        assert "--offsets" in result.output


# ==============================================================================
# Config
# ==============================================================================


class TestConfigHelp:
    """Tests for `sitelens config` help output."""

    def test_lists_subcommands(self):
        result = runner.invoke(app, ["config", "--help"])
        assert result.exit_code == 0
        assert "Configuration management" in result.output
        assert "show" in result.output

    def test_show_options(self):
        result = runner.invoke(app, ["config", "show", "--help"])
        assert result.exit_code == 0
        assert "--json" in result.output
        assert "--check" in result.output
