# ==============================================================================
# SiteLens CLI
# ==============================================================================
"""
Command-line interface for the sitelens web analytics engine.

Usage:
    sitelens --help
    sitelens attribution --site 42 --range 30d
    sitelens journeys --site 42 --range 7d
    sitelens retention --site 42 --start 2024-01-01 --end 2024-01-31
    sitelens forms --site 42 --csv events.csv
    sitelens dashboard --site 42 --json
    sitelens config show
"""

import logging
import os

import typer

from sitelens.utils.config import get_settings

# ==============================================================================
# App Configuration
# ==============================================================================
# Set consistent terminal width for help output formatting
if "COLUMNS" not in os.environ:
    os.environ["COLUMNS"] = "115"

app = typer.Typer(
    name="sitelens",
    help="Web analytics: attribution, journeys, retention and form funnels",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging before any command runs."""
    settings = get_settings()
    level = logging.DEBUG if verbose or settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Analytics commands are imported from sitelens.cli.analytics
from sitelens.cli.analytics import (
    attribution_command,
    dashboard_command,
    forms_command,
    journeys_command,
    retention_command,
)

app.command("attribution")(attribution_command)
app.command("journeys")(journeys_command)
app.command("retention")(retention_command)
app.command("forms")(forms_command)
app.command("dashboard")(dashboard_command)

config_app = typer.Typer(
    help="Configuration management",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Register config commands from cli.config module
from sitelens.cli.config import config_show

config_app.command("show")(config_show)


# ==============================================================================
# Entry Point
# ==============================================================================


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
