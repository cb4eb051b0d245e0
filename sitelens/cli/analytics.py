# ==============================================================================
# Analytics Commands
# ==============================================================================
"""
Analytics commands for the sitelens CLI.

Each command resolves a date range, runs one request through the
QueryGateway and renders the report as Rich tables (or JSON with --json).

Exit codes:
    0 - report rendered (including empty reports)
    1 - event log unavailable (retryable)
    2 - invalid range or parameters
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Annotated, Callable, Optional, TypeVar

import typer
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.table import Table

from sitelens.cli.shared import (
    BOX_WIDTH,
    C,
    I,
    _box_bottom,
    _box_header,
    _box_line,
    _empty_line,
    _section_header,
    _truncate,
    open_gateway,
    resolve_cli_range,
)
from sitelens.core.models import (
    AttributionReport,
    ChannelStat,
    DashboardReport,
    FormReport,
    JourneyReport,
    RetentionReport,
)
from sitelens.exceptions import InvalidRangeError, UpstreamUnavailableError
from sitelens.query import (
    AttributionRequest,
    DashboardRequest,
    FormRequest,
    JourneyRequest,
    RetentionRequest,
)

T = TypeVar("T")

# Rows shown per table in human-readable output (--json always has everything)
DISPLAY_ROWS = 10


# ==============================================================================
# Shared Options
# ==============================================================================

SiteOption = Annotated[str, typer.Option("--site", "-s", help="Site ID to report on")]
RangeOption = Annotated[
    Optional[str], typer.Option("--range", "-r", help="Preset range: today, 7d, 30d, 90d")
]
StartOption = Annotated[
    Optional[str], typer.Option("--start", help="Range start (YYYY-MM-DD or ISO timestamp, UTC)")
]
EndOption = Annotated[
    Optional[str],
    typer.Option("--end", help="Range end, exclusive (a bare date includes that whole day)"),
]
CsvOption = Annotated[
    Optional[Path],
    typer.Option("--csv", help="Read events from a CSV export instead of PostgreSQL"),
]
JsonOption = Annotated[bool, typer.Option("--json", "-j", help="Output as JSON for scripting")]
GoalOption = Annotated[
    Optional[str], typer.Option("--goal", "-g", help="Conversion event name (default: from config)")
]
LookbackOption = Annotated[
    Optional[int], typer.Option("--lookback", help="Attribution lookback window in days")
]
OffsetsOption = Annotated[
    Optional[str], typer.Option("--offsets", help="Retention day offsets, comma separated (e.g. 1,7,30)")
]
LimitOption = Annotated[
    Optional[int], typer.Option("--limit", "-n", help="Transitions returned (0 for all)")
]
CollapseOption = Annotated[
    bool, typer.Option("--collapse-reloads", help="Merge consecutive views of the same page")
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def _parse_offsets(offsets: Optional[str]) -> Optional[list[int]]:
    """Parse a comma separated offsets option (e.g. '1,7,30').

    Raises:
        typer.BadParameter: If any offset is not an integer
    """
    if offsets is None:
        return None
    try:
        return [int(part) for part in offsets.split(",") if part.strip()]
    except ValueError:
        raise typer.BadParameter(
            f"Invalid offsets '{offsets}'. Use comma separated integers (e.g. 1,7,30)",
            param_hint="--offsets",
        )


def _execute(query: Callable[[], T], json_output: bool) -> T:
    """Run a query, mapping failures to an error message and exit code."""
    try:
        return query()
    except (InvalidRangeError, ValidationError) as e:
        _print_error(str(e), json_output, retryable=False)
        raise typer.Exit(2)
    except UpstreamUnavailableError as e:
        _print_error(str(e), json_output, retryable=True)
        raise typer.Exit(1)


def _print_error(message: str, json_output: bool, retryable: bool) -> None:
    if json_output:
        print(json.dumps({"error": message, "retryable": retryable}))
    else:
        print(f"\n{C.BRIGHT_RED}{I.CROSS} {message}{C.RESET}")
        if retryable:
            print(f"  {C.DIM}The event log may be temporarily unavailable; try again shortly.{C.RESET}")
        print()


def _print_json(report: BaseModel) -> None:
    print(report.model_dump_json(by_alias=True, indent=2))


def _print_title(title: str, site: str, start: datetime, end: datetime) -> None:
    print()
    print(f"{C.BOLD}{title}{C.RESET}  {C.DIM}site {site}, {start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M} UTC{C.RESET}")


def _print_empty(message: str) -> None:
    print(f"\n  {C.BRIGHT_YELLOW}{I.WARN} {message}{C.RESET}\n")


def _pct(rate: float) -> str:
    """Format a 0..1 rate as a percentage."""
    return f"{rate * 100:.1f}%"


def _channel_table(title: str, stats: list[ChannelStat], total: int) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Channel", justify="left")
    table.add_column("Medium", justify="left")
    table.add_column("Conversions", justify="right")
    table.add_column("Share", justify="right")
    for stat in stats[:DISPLAY_ROWS]:
        share = stat.conversions / total if total else 0.0
        table.add_row(stat.channel, stat.medium, f"{stat.conversions:,}", _pct(share))
    return table


# ==============================================================================
# Renderers
# ==============================================================================


def render_attribution(report: AttributionReport, console: Console) -> None:
    summary = report.summary
    if summary.total_conversions == 0:
        _print_empty("No conversions found")
        return

    print(
        f"  {C.BOLD}Conversions:{C.RESET} {summary.total_conversions:,}    "
        f"{C.BOLD}Converting visitors:{C.RESET} {summary.converting_visitors:,}"
    )
    print()
    console.print(_channel_table("First Touch", report.first_touch, summary.total_conversions))
    console.print(_channel_table("Last Touch", report.last_touch, summary.total_conversions))

    if report.campaigns:
        table = Table(title="Campaigns (last touch)", show_header=True, header_style="bold")
        table.add_column("Campaign", justify="left")
        table.add_column("Source", justify="left")
        table.add_column("Conversions", justify="right")
        for campaign in report.campaigns[:DISPLAY_ROWS]:
            table.add_row(campaign.campaign, campaign.source or "—", f"{campaign.conversions:,}")
        console.print(table)

    if report.paths:
        table = Table(title="Conversion Paths", show_header=True, header_style="bold")
        table.add_column("Path", justify="left")
        table.add_column("Conversions", justify="right")
        table.add_column("Avg Touchpoints", justify="right")
        for path in report.paths:
            table.add_row(path.path, f"{path.conversions:,}", f"{path.avg_touchpoints:.1f}")
        console.print(table)
    print()


def render_journeys(report: JourneyReport, console: Console) -> None:
    stats = report.stats
    if stats.total_sessions == 0:
        _print_empty("No page views found")
        return

    print(
        f"  {C.BOLD}Sessions:{C.RESET} {stats.total_sessions:,}    "
        f"{C.BOLD}Pages/session:{C.RESET} {stats.avg_pages_per_session:.2f}    "
        f"{C.BOLD}Unique pages:{C.RESET} {stats.unique_pages:,}"
    )
    print()

    if report.transitions:
        table = Table(title="Top Transitions", show_header=True, header_style="bold")
        table.add_column("From", justify="left")
        table.add_column("To", justify="left")
        table.add_column("Count", justify="right")
        for edge in report.transitions:
            table.add_row(edge.from_path, edge.to_path, f"{edge.count:,}")
        console.print(table)
    else:
        print(f"  {C.DIM}No page-to-page transitions (single-page sessions only){C.RESET}")

    for title, pages in (("Entry Pages", report.entry_pages), ("Exit Pages", report.exit_pages)):
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Page", justify="left")
        table.add_column("Sessions", justify="right")
        for page in pages[:DISPLAY_ROWS]:
            table.add_row(page.page, f"{page.count:,}")
        console.print(table)

    if report.top_paths:
        table = Table(title="Top Paths", show_header=True, header_style="bold")
        table.add_column("Path", justify="left")
        table.add_column("Sessions", justify="right")
        for path in report.top_paths[:DISPLAY_ROWS]:
            table.add_row(f" {I.ARROW} ".join(path.path), f"{path.count:,}")
        console.print(table)
    print()


def render_retention(report: RetentionReport, console: Console) -> None:
    if not report.cohorts:
        _print_empty("No new visitors found")
        return

    days = [s.day for s in report.summary]
    table = Table(title="Retention Cohorts", show_header=True, header_style="bold")
    table.add_column("Cohort", justify="left")
    table.add_column("Visitors", justify="right")
    for day in days:
        table.add_column(f"Day {day}", justify="right")

    for cohort in report.cohorts:
        points = {p.day: p for p in cohort.retention}
        cells = [
            f"{_pct(points[d].rate)} ({points[d].retained})" if d in points else "—" for d in days
        ]
        table.add_row(cohort.cohort_date.isoformat(), f"{cohort.cohort_size:,}", *cells)
    console.print(table)

    for s in report.summary:
        reached = f"{s.cohorts} cohort{'s' if s.cohorts != 1 else ''}"
        value = _pct(s.average_rate) if s.cohorts else "not reached yet"
        print(f"  {C.BOLD}Day {s.day} average:{C.RESET} {value}  {C.DIM}({reached}){C.RESET}")
    print()


def render_forms(report: FormReport, console: Console) -> None:
    if not report.forms:
        _print_empty("No form activity found")
        return

    table = Table(title="Forms", show_header=True, header_style="bold")
    table.add_column("Form", justify="left")
    table.add_column("Views", justify="right")
    table.add_column("Submissions", justify="right")
    table.add_column("Abandons", justify="right")
    table.add_column("Conversion", justify="right")
    for form in report.forms:
        table.add_row(
            form.form_id,
            f"{form.views:,}",
            f"{form.submissions:,}",
            f"{form.abandons:,}",
            f"{form.conversion_rate:.1f}%",
        )
    console.print(table)
    print()


def render_dashboard(report: DashboardReport, site: str, start: datetime, end: datetime) -> None:
    """Render the one-screen overview inside a box."""
    W = BOX_WIDTH
    label_width = 24
    value_width = W - 2 - label_width - 4

    def row(label: str, value: str) -> str:
        return _box_line(f"  {label:<{label_width}}{_truncate(value, value_width)}", W)

    attribution, journeys, retention, forms = (
        report.attribution,
        report.journeys,
        report.retention,
        report.forms,
    )

    print()
    print(_box_header("SITELENS DASHBOARD", W))
    print(_empty_line(W))
    print(row("Site", site))
    print(row("Range (UTC)", f"{start:%Y-%m-%d %H:%M} to {end:%Y-%m-%d %H:%M}"))
    print(_empty_line(W))

    print(_section_header("Attribution", W))
    print(row("Conversions", f"{attribution.summary.total_conversions:,}"))
    if attribution.first_touch:
        top = attribution.first_touch[0]
        print(row("Top first touch", f"{top.channel} ({top.conversions:,})"))
    if attribution.last_touch:
        top = attribution.last_touch[0]
        print(row("Top last touch", f"{top.channel} ({top.conversions:,})"))

    print(_section_header("Journeys", W))
    print(row("Sessions", f"{journeys.stats.total_sessions:,}"))
    print(row("Pages/session", f"{journeys.stats.avg_pages_per_session:.2f}"))
    if journeys.transitions:
        edge = journeys.transitions[0]
        print(row("Top transition", f"{edge.from_path} {I.ARROW} {edge.to_path} ({edge.count:,})"))

    print(_section_header("Retention", W))
    print(row("Cohorts", f"{len(retention.cohorts):,}"))
    for s in retention.summary:
        value = _pct(s.average_rate) if s.cohorts else "—"
        print(row(f"Day {s.day} average", value))

    print(_section_header("Forms", W))
    print(row("Forms tracked", f"{len(forms.forms):,}"))
    if forms.forms:
        top_form = forms.forms[0]
        print(row("Most submitted", f"{top_form.form_id} ({top_form.submissions:,})"))

    print(_empty_line(W))
    print(_box_bottom("sitelens", W))
    print()


# ==============================================================================
# Commands
# ==============================================================================


def attribution_command(
    site: SiteOption,
    range_: RangeOption = None,
    start: StartOption = None,
    end: EndOption = None,
    goal: GoalOption = None,
    lookback: LookbackOption = None,
    csv: CsvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show first-touch and last-touch attribution for conversions.

    Examples:
        sitelens attribution --site 42 --range 30d
        sitelens attribution --site 42 --goal signup --lookback 30
        sitelens attribution --site 42 --start 2024-01-01 --end 2024-01-31 --json
    """
    start_dt, end_dt = _execute(lambda: resolve_cli_range(range_, start, end), json_output)

    def query() -> AttributionReport:
        request = AttributionRequest(
            site_id=site,
            start=start_dt,
            end=end_dt,
            goal_event=goal,
            lookback_window_days=lookback,
        )
        with open_gateway(csv) as gateway:
            return gateway.attribution(request)

    report = _execute(query, json_output)
    if json_output:
        _print_json(report)
        return
    _print_title("Attribution", site, start_dt, end_dt)
    render_attribution(report, Console())


def journeys_command(
    site: SiteOption,
    range_: RangeOption = None,
    start: StartOption = None,
    end: EndOption = None,
    limit: LimitOption = None,
    collapse_reloads: CollapseOption = False,
    csv: CsvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show page transitions, entry and exit pages for sessions.

    Examples:
        sitelens journeys --site 42 --range 7d
        sitelens journeys --site 42 --limit 0 --json
    """
    start_dt, end_dt = _execute(lambda: resolve_cli_range(range_, start, end), json_output)

    def query() -> JourneyReport:
        request = JourneyRequest(
            site_id=site,
            start=start_dt,
            end=end_dt,
            max_transitions=limit,
            collapse_self_loops=collapse_reloads,
        )
        with open_gateway(csv) as gateway:
            return gateway.journeys(request)

    report = _execute(query, json_output)
    if json_output:
        _print_json(report)
        return
    _print_title("User Journeys", site, start_dt, end_dt)
    render_journeys(report, Console())


def retention_command(
    site: SiteOption,
    range_: RangeOption = None,
    start: StartOption = None,
    end: EndOption = None,
    offsets: OffsetsOption = None,
    csv: CsvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show day-N retention for visitor cohorts first seen in the range.

    Examples:
        sitelens retention --site 42 --range 90d
        sitelens retention --site 42 --offsets 1,3,7,14,30
    """
    day_offsets = _parse_offsets(offsets)
    start_dt, end_dt = _execute(lambda: resolve_cli_range(range_, start, end), json_output)

    def query() -> RetentionReport:
        request = RetentionRequest(site_id=site, start=start_dt, end=end_dt, day_offsets=day_offsets)
        with open_gateway(csv) as gateway:
            return gateway.retention(request)

    report = _execute(query, json_output)
    if json_output:
        _print_json(report)
        return
    _print_title("Retention", site, start_dt, end_dt)
    render_retention(report, Console())


def forms_command(
    site: SiteOption,
    range_: RangeOption = None,
    start: StartOption = None,
    end: EndOption = None,
    csv: CsvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show form views, submissions, abandons and conversion rate.

    Examples:
        sitelens forms --site 42 --range 30d
    """
    start_dt, end_dt = _execute(lambda: resolve_cli_range(range_, start, end), json_output)

    def query() -> FormReport:
        request = FormRequest(site_id=site, start=start_dt, end=end_dt)
        with open_gateway(csv) as gateway:
            return gateway.forms(request)

    report = _execute(query, json_output)
    if json_output:
        _print_json(report)
        return
    _print_title("Forms", site, start_dt, end_dt)
    render_forms(report, Console())


def dashboard_command(
    site: SiteOption,
    range_: RangeOption = None,
    start: StartOption = None,
    end: EndOption = None,
    goal: GoalOption = None,
    lookback: LookbackOption = None,
    offsets: OffsetsOption = None,
    csv: CsvOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show all four analytics computed from one event snapshot.

    Examples:
        sitelens dashboard --site 42
        sitelens dashboard --site 42 --range 90d --json
    """
    day_offsets = _parse_offsets(offsets)
    start_dt, end_dt = _execute(lambda: resolve_cli_range(range_, start, end), json_output)

    def query() -> DashboardReport:
        request = DashboardRequest(
            site_id=site,
            start=start_dt,
            end=end_dt,
            goal_event=goal,
            lookback_window_days=lookback,
            day_offsets=day_offsets,
        )
        with open_gateway(csv) as gateway:
            return gateway.dashboard(request)

    report = _execute(query, json_output)
    if json_output:
        _print_json(report)
        return
    render_dashboard(report, site, start_dt, end_dt)
