# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for sitelens.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- analytics.py: attribution, journeys, retention, forms and dashboard
- config.py: config show
"""

from sitelens.cli.shared import (
    # Constants
    BOX_WIDTH,
    # Classes
    Box,
    Colors,
    Icons,
    # Aliases
    B,
    C,
    I,
    # Date ranges
    parse_timestamp,
    resolve_cli_range,
    # Event log
    open_event_log,
    open_gateway,
)

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
