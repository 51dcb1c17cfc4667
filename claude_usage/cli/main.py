"""
CLI interface for Claude Usage.

Provides command-line access to usage reports, model prices and projects.
"""

import logging
import sys
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from claude_usage.config.loader import Settings, load_settings
from claude_usage.core.aggregator import (
    aggregate_by_project,
    aggregate_by_project_and_day,
    summarize,
)
from claude_usage.core.filters import TimeFilterError, apply_filters, get_available_projects, parse_time_filter
from claude_usage.core.pricing import PricingResolver, get_available_models
from claude_usage.core.project_detector import project_aware_filter
from claude_usage.core.sorter import InvalidSortError, create_sort_config, sort_records
from claude_usage.storage.models import AggregatedEntry, UsageRecord
from claude_usage.storage.repository import ClaudeConfigNotFoundError, get_repository

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

PER_MILLION = Decimal("1000000")


class GroupBy(str, Enum):
    """How report rows are grouped."""
    NONE = "none"
    DAY = "day"
    PROJECT = "project"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_settings(ctx: typer.Context) -> Settings:
    config_path = (ctx.obj or {}).get("config")
    try:
        return load_settings(config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        err_console.print(f"[red]Error loading configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _build_resolver(settings: Settings) -> PricingResolver:
    return PricingResolver(
        url=settings.pricing_url,
        timeout=settings.pricing_timeout,
        ttl=settings.cache_ttl,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML settings file"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging"
    ),
):
    """Claude Code usage and cost reports."""
    _configure_logging(verbose)
    ctx.obj = {"config": config}
    if ctx.invoked_subcommand is None:
        console.print("Claude Usage - Use --help to see available commands")


@app.command()
def report(
    ctx: typer.Context,
    time_filter: Optional[str] = typer.Option(
        None,
        "--time",
        "-t",
        help="Time range, e.g. 7d, 2h, 7-8, july-august, 2024-07-01,2024-08-31"
    ),
    project: Optional[str] = typer.Option(
        None,
        "--project",
        "-p",
        help="Only include projects whose name contains this text"
    ),
    all_projects: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Do not restrict the report to the current project"
    ),
    sort: str = typer.Option(
        "time",
        "--sort",
        "-s",
        help="Sort field: cost, time, tokens or project"
    ),
    order: str = typer.Option(
        "desc",
        "--order",
        "-o",
        help="Sort order: asc or desc"
    ),
    group: GroupBy = typer.Option(
        GroupBy.DAY,
        "--group",
        "-g",
        help="Group rows by project and day, by project, or not at all"
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Refetch model pricing even if a cached copy is fresh"
    ),
):
    """
    Show token usage and cost per message, per day or per project.

    By default the report is limited to the project in the current directory
    when one can be detected; pass --all to include every project.
    """
    settings = _load_settings(ctx)

    try:
        sort_config = create_sort_config(sort, order)
        parse_time_filter(time_filter)
    except (InvalidSortError, TimeFilterError) as e:
        err_console.print(f"[red]Error:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        pricing = _build_resolver(settings).fetch(use_cache=not no_cache)
        scan = get_repository(settings).scan(pricing)
    except ClaudeConfigNotFoundError as e:
        err_console.print(str(e), style="red", markup=False)
        sys.exit(EXIT_CODE_FAIL)

    project_filter, auto_detected = project_aware_filter(project, all_projects)
    records = apply_filters(scan.records, time_filter=time_filter, project_filter=project_filter)

    if group == GroupBy.DAY:
        rows: List[Union[UsageRecord, AggregatedEntry]] = aggregate_by_project_and_day(records)
    elif group == GroupBy.PROJECT:
        rows = aggregate_by_project(records)
    else:
        rows = records
    rows = sort_records(rows, sort_config.field, sort_config.order)

    if auto_detected:
        console.print(f"[dim]Showing project '{project_filter}' (use --all for every project)[/]")

    if not rows:
        console.print("\n[bold yellow]No Claude Code usage found[/]")
        if time_filter or project_filter:
            console.print("Try widening the --time or --project filters, or pass --all.\n")
        sys.exit(EXIT_CODE_PASS)

    _display_report(rows, group, sort_config.field_description, sort_config.icon)
    _display_summary(records)

    if scan.malformed_lines or scan.unreadable_paths:
        console.print(
            f"[dim]Skipped {scan.malformed_lines} malformed lines and "
            f"{len(scan.unreadable_paths)} unreadable paths[/]"
        )


@app.command()
def models(
    ctx: typer.Context,
    name: Optional[str] = typer.Option(
        None,
        "--filter",
        "-f",
        help="Only list models whose name contains this text"
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Refetch model pricing even if a cached copy is fresh"
    ),
):
    """List known models and their prices per million tokens."""
    settings = _load_settings(ctx)
    table = _build_resolver(settings).fetch(use_cache=not no_cache)

    model_names = get_available_models(table)
    if name:
        model_names = [model for model in model_names if name.lower() in model.lower()]

    output = Table(title=f"Model pricing ({table.source}, $ per 1M tokens)")
    output.add_column("Model")
    output.add_column("Input", justify="right")
    output.add_column("Output", justify="right")
    output.add_column("Cache Write", justify="right")
    output.add_column("Cache Read", justify="right")

    for model in model_names:
        pricing = table.get_pricing(model)
        output.add_row(
            model,
            _format_rate(pricing.input_cost_per_token),
            _format_rate(pricing.output_cost_per_token),
            _format_rate(pricing.cache_creation_cost_per_token),
            _format_rate(pricing.cache_read_cost_per_token),
        )

    console.print(output)
    console.print(f"{len(model_names)} models")


@app.command()
def projects(ctx: typer.Context):
    """List projects that have recorded usage."""
    settings = _load_settings(ctx)
    try:
        scan = get_repository(settings).scan(pricing=None)
    except ClaudeConfigNotFoundError as e:
        err_console.print(str(e), style="red", markup=False)
        sys.exit(EXIT_CODE_FAIL)

    names = get_available_projects(scan.records)
    if not names:
        console.print("\n[bold yellow]No projects with usage data found[/]\n")
        sys.exit(EXIT_CODE_PASS)

    by_project = {entry.project: entry for entry in aggregate_by_project(scan.records)}
    output = Table(title="Projects")
    output.add_column("Project")
    output.add_column("Messages", justify="right")
    output.add_column("Last Activity")
    for name in names:
        entry = by_project[name]
        output.add_row(name, f"{entry.message_count:,}", _format_time(entry.timestamp))
    console.print(output)


def _format_currency(amount: Decimal, places: int = 4) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.{places}f}"


def _format_rate(rate: Decimal) -> str:
    return _format_currency(rate * PER_MILLION, places=2)


def _format_time(timestamp) -> str:
    if timestamp is None:
        return "-"
    return timestamp.astimezone().strftime("%Y-%m-%d %H:%M")


def _display_report(rows, group: GroupBy, sort_description: str, icon: str) -> None:
    """Render report rows as a table."""
    output = Table(title=f"Claude Code usage ({sort_description} {icon})")
    output.add_column("Date" if group == GroupBy.DAY else "Time")
    output.add_column("Project")
    output.add_column("Model")
    if group != GroupBy.NONE:
        output.add_column("Msgs", justify="right")
    for heading in ("Input", "Output", "Cache Write", "Cache Read", "Total", "Cost"):
        output.add_column(heading, justify="right")

    for row in rows:
        if group == GroupBy.DAY:
            when = row.date if row.date is not None else "unknown"
        else:
            when = _format_time(row.timestamp)
        cells = [when, row.project, row.model or ""]
        if group != GroupBy.NONE:
            cells.append(f"{row.message_count:,}")
        cells.extend([
            f"{row.input_tokens:,}",
            f"{row.output_tokens:,}",
            f"{row.cache_write_tokens:,}",
            f"{row.cache_read_tokens:,}",
            f"{row.total_tokens:,}",
            _format_currency(row.cost),
        ])
        output.add_row(*cells)

    console.print(output)


def _display_summary(records) -> None:
    summary = summarize(records)
    console.print(
        f"\n[bold]Total:[/bold] {summary.message_count:,} messages, "
        f"{summary.total_tokens:,} tokens, {_format_currency(summary.cost, places=2)}"
    )
    if summary.models:
        console.print(f"Models: {', '.join(summary.models)}")


if __name__ == "__main__":
    app()
