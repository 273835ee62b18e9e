"""
CLI Interface for logsleuth.

Analyzes one or more log files and prints the top error signatures,
frequency spikes and correlated incidents.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .graph import AnalysisRun
from .models.parsed_event import Severity
from .models.report import Report
from .parsers.base import parse_timestamp
from .utils.config import Config, get_config, parse_duration


# Initialize CLI app
app = typer.Typer(
    name="logsleuth",
    help="Multi-format log analysis: error signatures, spikes and correlated incidents"
)
console = Console()
err_console = Console(stderr=True)

TREND_STYLES = {"spike": "bold red", "new": "cyan", "steady": "white", "declining": "green"}
SEVERITY_STYLES = {
    "EMERGENCY": "bold red",
    "ALERT": "bold red",
    "CRITICAL": "red",
    "ERROR": "red",
    "WARNING": "yellow",
    "NOTICE": "cyan",
}


def setup_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def check_config() -> Config:
    """Check configuration and display any issues."""
    config = get_config()
    problems = config.validate()

    if problems:
        err_console.print("\n[bold red]Configuration Issues:[/bold red]")
        for item in problems:
            err_console.print(f"  [yellow]• {item}[/yellow]")
        err_console.print()

    return config


def _parse_time_option(value: Optional[str], name: str) -> Optional[datetime]:
    if value is None:
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise typer.BadParameter(f"cannot parse time {value!r}", param_hint=name)
    return parsed


def _parse_duration_option(value: Optional[str], name: str):
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint=name)


def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _truncate(text: str, width: int) -> str:
    text = text if len(text) <= width else text[: width - 3] + "..."
    return escape(text)


def display_summary(report: Report) -> None:
    """Display the headline numbers."""
    severities = ", ".join(
        f"[{SEVERITY_STYLES.get(name, 'white')}]{name}[/] {count}"
        for name, count in report.severity_counts.items()
    ) or "none"

    content = f"""[bold]Events:[/bold] {report.total_events}
[bold]Severities:[/bold] {severities}
[bold]Incidents:[/bold] {len(report.groups)} [dim](+{report.singleton_count} isolated events)[/dim]
[bold]Spikes:[/bold] {len(report.spikes)}

[bold]Unrecognized records:[/bold] {report.unrecognized_records}
[bold]Partial records:[/bold] {report.partial_records}
[bold]Unanalyzable records:[/bold] {report.unanalyzable_records} [dim](no usable timestamp)[/dim]"""

    color = "red" if report.spikes else "cyan"
    console.print(Panel(content, title=f"[{color}]Analysis Summary[/{color}]", border_style=color))


def display_files(report: Report) -> None:
    table = Table(title="Input Files")
    table.add_column("File")
    table.add_column("Status", style="bold")
    table.add_column("Read")
    table.add_column("Lines", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Notes", max_width=50)

    for outcome in report.files:
        if outcome.failed:
            table.add_row(escape(outcome.path), "[red]failed[/red]", "-", "-", "-", escape(outcome.error or ""))
            continue

        notes = []
        if outcome.truncated:
            notes.append("budget reached")
        if outcome.targeted_lines:
            notes.append(f"+{outcome.targeted_lines} targeted lines")
        if outcome.unrecognized:
            notes.append(f"{outcome.unrecognized} unrecognized")

        read = outcome.strategy
        if outcome.strategy == "tail":
            read = f"tail {outcome.tail_lines} lines ({outcome.bytes_read}/{outcome.bytes_total} bytes)"
        table.add_row(
            escape(outcome.path),
            "[green]ok[/green]",
            read,
            str(outcome.lines_read),
            str(outcome.events),
            ", ".join(notes),
        )

    console.print(table)


def display_signatures(report: Report) -> None:
    if not report.top_signatures:
        console.print("[green]No error signatures at or above the minimum severity.[/green]")
        return

    table = Table(title=f"Top {len(report.top_signatures)} Error Signature(s)")
    table.add_column("Count", justify="right", style="bold")
    table.add_column("Trend")
    table.add_column("Latest", justify="right")
    table.add_column("Baseline", justify="right")
    table.add_column("Kind")
    table.add_column("Message", max_width=60)
    table.add_column("Location")
    table.add_column("Last seen")

    for sig in report.top_signatures:
        style = TREND_STYLES.get(sig.trend, "white")
        table.add_row(
            str(sig.count),
            f"[{style}]{sig.trend}[/{style}]",
            str(sig.latest_window_count),
            f"{sig.baseline_mean:.1f}",
            escape(sig.exception_kind or "-"),
            _truncate(sig.sample_message, 60),
            escape(sig.primary_location or "-"),
            _fmt_time(sig.last_seen),
        )

    console.print(table)


def display_groups(report: Report) -> None:
    if not report.groups:
        return

    console.rule(f"[bold]{len(report.groups)} correlated incident(s)[/bold]")
    for i, group in enumerate(report.groups, 1):
        trigger = group.trigger
        lines = [
            f"[bold]Trigger:[/bold] {_fmt_time(trigger.timestamp)} "
            f"[{SEVERITY_STYLES.get(trigger.severity, 'white')}]{trigger.severity}[/] "
            f"{escape(trigger.exception_kind or '')} {_truncate(trigger.message, 80)}",
            f"[dim]{escape(trigger.source)}[/dim]",
        ]
        if group.primary_location:
            lines.append(f"[bold]Primary location:[/bold] {escape(group.primary_location)}")
        if group.correlation_id:
            lines.append(f"[bold]Correlation id:[/bold] {escape(group.correlation_id)}")
        for cascade in group.cascades:
            lines.append(
                f"  [yellow]→[/yellow] {_fmt_time(cascade.timestamp)} "
                f"{escape(cascade.exception_kind or '')} {_truncate(cascade.message, 70)}"
            )
        if group.duplicate_count:
            lines.append(f"[dim]{group.duplicate_count} repeated event(s)[/dim]")

        console.print(Panel(
            "\n".join(lines),
            title=f"Incident {i} ({group.size} events, {group.reason.replace('_', ' ')})",
            subtitle=f"[dim]{group.label}[/dim]",
            border_style="yellow",
        ))


@app.command()
def analyze(
    files: List[Path] = typer.Argument(
        ...,
        help="Log files to analyze"
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the report as JSON"
    ),
    top: Optional[int] = typer.Option(
        None,
        "--top", "-n",
        min=1,
        help="Number of error signatures to list"
    ),
    bucket_window: Optional[str] = typer.Option(
        None,
        "--bucket-window",
        help="Frequency window, e.g. 1h, 15m"
    ),
    correlation_window: Optional[str] = typer.Option(
        None,
        "--correlation-window",
        help="Time proximity for grouping events, e.g. 1s, 500ms"
    ),
    spike_multiplier: Optional[float] = typer.Option(
        None,
        "--spike-multiplier",
        help="Latest window count above this multiple of the baseline is a spike"
    ),
    min_history: Optional[int] = typer.Option(
        None,
        "--min-history",
        min=1,
        help="History windows needed before a spike can be flagged"
    ),
    min_severity: Optional[str] = typer.Option(
        None,
        "--min-severity",
        help="Lowest severity included in frequency and correlation analysis"
    ),
    vendor_prefix: Optional[List[str]] = typer.Option(
        None,
        "--vendor-prefix",
        help="Vendor path prefix (repeatable, replaces the configured list)"
    ),
    project_root: Optional[List[str]] = typer.Option(
        None,
        "--project-root",
        help="Project root stripped from frame paths (repeatable)"
    ),
    max_lines: Optional[int] = typer.Option(
        None,
        "--max-lines",
        min=1,
        help="Hard limit on lines read per file"
    ),
    max_bytes: Optional[int] = typer.Option(
        None,
        "--max-bytes",
        min=1,
        help="Hard limit on bytes read per file"
    ),
    grep: Optional[str] = typer.Option(
        None,
        "--grep", "-g",
        help="Also read every line matching this regex, anywhere in the file"
    ),
    since: Optional[str] = typer.Option(
        None,
        "--since",
        help="Ignore events before this time (ISO 8601)"
    ),
    until: Optional[str] = typer.Option(
        None,
        "--until",
        help="Ignore events after this time (ISO 8601)"
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        min=1,
        help="Files processed in parallel"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show progress logging"
    ),
):
    """
    Analyze log files and report error signatures and incidents.

    Example:
        logsleuth analyze var/log/prod.log /var/log/php_errors.log
        logsleuth analyze storage/logs/laravel.log --bucket-window 15m --json
    """
    config = check_config()
    setup_logging("INFO" if verbose else config.log_level)

    severity = None
    if min_severity is not None:
        key = min_severity.strip().upper()
        if key not in Severity.__members__:
            raise typer.BadParameter(
                f"unknown level {min_severity!r} (one of {', '.join(Severity.__members__)})",
                param_hint="--min-severity",
            )
        severity = Severity[key]

    if grep is not None:
        try:
            re.compile(grep)
        except re.error as e:
            raise typer.BadParameter(f"invalid regex: {e}", param_hint="--grep")

    try:
        settings = config.to_settings(
            top_n=top,
            bucket_window=_parse_duration_option(bucket_window, "--bucket-window"),
            correlation_window=_parse_duration_option(correlation_window, "--correlation-window"),
            spike_multiplier=spike_multiplier,
            min_history_windows=min_history,
            min_severity=severity,
            vendor_prefixes=tuple(vendor_prefix) if vendor_prefix else None,
            project_roots=tuple(project_root) if project_root else None,
            max_lines=max_lines,
            max_bytes=max_bytes,
            grep_pattern=grep,
            since=_parse_time_option(since, "--since"),
            until=_parse_time_option(until, "--until"),
            max_workers=workers,
        )
    except ValueError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=2)

    paths = [str(f) for f in files]
    if as_json:
        with AnalysisRun(settings) as run:
            report = run.run(paths)
        typer.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        with console.status(f"[bold cyan]Analyzing {len(paths)} file(s)...[/bold cyan]"):
            with AnalysisRun(settings) as run:
                report = run.run(paths)

        display_summary(report)
        display_files(report)
        display_signatures(report)
        display_groups(report)

    if report.files and len(report.failed_files) == len(report.files):
        err_console.print("[red]No input file could be read.[/red]")
        raise typer.Exit(code=1)


@app.command()
def config():
    """Show current configuration status."""
    cfg = get_config()
    console.print("\n[bold]Current Configuration:[/bold]\n")
    console.print(str(cfg))

    problems = cfg.validate()
    if problems:
        console.print("\n[bold red]Invalid Configuration:[/bold red]")
        for item in problems:
            console.print(f"  [yellow]• {item}[/yellow]")
        raise typer.Exit(code=1)

    console.print("\n[bold green]✅ Configuration is valid![/bold green]")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
