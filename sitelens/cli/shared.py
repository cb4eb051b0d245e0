# ==============================================================================
# Shared Utilities for CLI Commands
# ==============================================================================
"""
Shared utilities, constants, and helper functions used across CLI command modules.

This module provides:
- ANSI color codes and box-drawing characters
- Date range parsing for --range / --start / --end
- Event log and gateway construction from settings
- Box drawing helpers for formatted output
"""

import re
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Iterator, Optional

import polars as pl
import psycopg2
import typer

from sitelens.base import EventLog
from sitelens.exceptions import UpstreamUnavailableError
from sitelens.infrastructure.cache import get_valkey_cache
from sitelens.infrastructure.repositories import CsvEventLog, PostgreSQLEventLog
from sitelens.query import QueryGateway, resolve_date_range
from sitelens.query.requests import DEFAULT_PRESET
from sitelens.utils.config import Settings, get_settings

# ==============================================================================
# Constants
# ==============================================================================

# Box drawing width (unified for all commands)
BOX_WIDTH = 68


# ==============================================================================
# ANSI Colors and Box Drawing
# ==============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Colors
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Bright colors
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


class Box:
    """Unicode box-drawing characters."""

    H = "─"  # horizontal
    V = "│"  # vertical
    TL = "┌"  # top-left
    TR = "┐"  # top-right
    BL = "└"  # bottom-left
    BR = "┘"  # bottom-right
    LT = "├"  # left-tee
    RT = "┤"  # right-tee


class Icons:
    """Status icons using Unicode symbols."""

    CHECK = "✓"
    CROSS = "✗"
    WARN = "!"
    BULLET = "•"
    ARROW = "→"
    DATABASE = "◆"


# Module-level aliases for convenience
C, B, I = Colors, Box, Icons


# ==============================================================================
# Date Range Helpers
# ==============================================================================


def parse_timestamp(value: str, option: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime option value as UTC.

    A bare date means midnight; with end_of_day it means midnight of the
    following day, so `--end 2024-01-31` includes all of January 31.

    Raises:
        typer.BadParameter: If the value is not ISO 8601
    """
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            if end_of_day:
                day += timedelta(days=1)
            return datetime.combine(day, time.min, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(
            f"Invalid {option} value '{value}'. Use YYYY-MM-DD or an ISO 8601 timestamp",
            param_hint=option,
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_cli_range(
    preset: Optional[str],
    start: Optional[str],
    end: Optional[str],
) -> tuple[datetime, datetime]:
    """Resolve the date range options of an analytics command.

    Either a preset or explicit bounds may be given, not both. With neither,
    the default preset applies; with only --start, the range ends now.

    Raises:
        typer.BadParameter: If both a preset and explicit bounds are given
        InvalidRangeError: If the preset is unknown
    """
    if preset is not None and (start is not None or end is not None):
        raise typer.BadParameter("Use either --range or --start/--end, not both")
    if start is None and end is None:
        return resolve_date_range(preset or DEFAULT_PRESET)
    if start is None:
        raise typer.BadParameter("--end requires --start", param_hint="--start")

    start_dt = parse_timestamp(start, "--start")
    end_dt = parse_timestamp(end, "--end", end_of_day=True) if end else datetime.now(timezone.utc)
    return start_dt, end_dt


# ==============================================================================
# Event Log Helpers
# ==============================================================================


@contextmanager
def open_event_log(csv_path: Optional[Path], settings: Settings | None = None) -> Iterator[EventLog]:
    """Open the event log: a CSV export when given, otherwise PostgreSQL.

    Raises:
        UpstreamUnavailableError: If the event log cannot be opened
    """
    settings = settings or get_settings()
    try:
        if csv_path is not None:
            event_log: EventLog = CsvEventLog(csv_path)
        else:
            event_log = PostgreSQLEventLog(settings)
        event_log.connect()
    except (OSError, ValueError, pl.exceptions.PolarsError, psycopg2.Error) as e:
        raise UpstreamUnavailableError(f"Cannot open event log: {e}", cause=e) from e

    try:
        yield event_log
    finally:
        event_log.close()


@contextmanager
def open_gateway(csv_path: Optional[Path], settings: Settings | None = None) -> Iterator[QueryGateway]:
    """Open a QueryGateway over the configured event log and report cache."""
    settings = settings or get_settings()
    # CSV exports are local snapshots; caching them would outlive edits to the file
    cache = get_valkey_cache(settings) if csv_path is None else None
    try:
        with open_event_log(csv_path, settings) as event_log:
            with QueryGateway(event_log, cache=cache, settings=settings) as gateway:
                yield gateway
    finally:
        if cache is not None:
            cache.close()


# ==============================================================================
# Box Drawing Helpers
# ==============================================================================

# Regex pattern for stripping ANSI escape codes
_ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def _visible_len(s: str) -> int:
    """Calculate visible length of string, ignoring ANSI escape codes."""
    return len(_ANSI_ESCAPE_PATTERN.sub("", s))


def _box_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a single-line box header."""
    inner_width = width - 2
    title_padded = f" {title} "
    left_bar = (inner_width - len(title_padded)) // 2
    right_bar = inner_width - left_bar - len(title_padded)
    return (
        f"{C.CYAN}{B.TL}{B.H * left_bar}{C.BOLD}{C.WHITE}{title_padded}"
        f"{C.RESET}{C.CYAN}{B.H * right_bar}{B.TR}{C.RESET}"
    )


def _section_header(title: str, width: int = BOX_WIDTH) -> str:
    """Create a section header inside the box."""
    inner_width = width - 2
    title_padded = f" {title} "
    bar_len = inner_width - len(title_padded) - 1  # -1 for the first H after LT
    return (
        f"{C.CYAN}{B.LT}{B.H}{C.BOLD}{title_padded}{C.RESET}{C.CYAN}{B.H * bar_len}{B.RT}{C.RESET}"
    )


def _box_line(content: str, width: int = BOX_WIDTH) -> str:
    """Create a line inside the box with proper padding to right border."""
    inner_width = width - 2
    padding = max(0, inner_width - _visible_len(content))
    return f"{C.CYAN}{B.V}{C.RESET}{content}{' ' * padding}{C.CYAN}{B.V}{C.RESET}"


def _empty_line(width: int = BOX_WIDTH) -> str:
    """Create an empty line inside the box."""
    return f"{C.CYAN}{B.V}{' ' * (width - 2)}{B.V}{C.RESET}"


def _box_bottom(footer: str = "", width: int = BOX_WIDTH) -> str:
    """Create a box bottom border with an optional centered footer."""
    text = f" {footer} " if footer else ""
    remaining = width - 2 - len(text)  # -2 for corners
    left_pad = remaining // 2
    right_pad = remaining - left_pad
    return f"{C.CYAN}{B.BL}{B.H * left_pad}{text}{B.H * right_pad}{B.BR}{C.RESET}"


def _truncate(text: str, width: int) -> str:
    """Shorten text to width characters, marking the cut with an ellipsis."""
    return text if len(text) <= width else text[: width - 1] + "…"


__all__ = [
    # Constants
    "BOX_WIDTH",
    # Classes
    "Box",
    "Colors",
    "Icons",
    # Aliases
    "B",
    "C",
    "I",
    # Date ranges
    "parse_timestamp",
    "resolve_cli_range",
    # Event log
    "open_event_log",
    "open_gateway",
]
