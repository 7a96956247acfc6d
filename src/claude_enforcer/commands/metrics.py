"""
Metrics CLI commands - inspect and prune the execution log.
"""

import typer
from rich.console import Console
from rich.table import Table

from claude_enforcer.commands.common import open_engine
from claude_enforcer.errors import MetricsError
from claude_enforcer.metrics import MetricsReader, prune as prune_log

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.command()
def show(
    days: int = typer.Option(7, "--days", "-d", min=1, help="Trailing window in days"),
) -> None:
    """Per-category runs, violations and errors."""
    _, paths = open_engine()
    summary = MetricsReader(paths.metrics_log).summary(days)

    if not summary:
        console.print(f"[dim]No metrics recorded in the last {days} day(s).[/dim]")
        return

    table = Table(title=f"Hook Metrics (last {days} days)")
    table.add_column("Category", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Violations", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Violation rate", justify="right", style="bold")
    table.add_column("Error rate", justify="right")

    for category, stats in summary.items():
        table.add_row(
            category,
            str(stats.runs),
            str(stats.violations),
            str(stats.errors),
            f"{stats.violation_rate:.1%}",
            f"{stats.error_rate:.1%}",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def prune(
    days: int | None = typer.Option(
        None, "--days", "-d", min=1, help="Retention in days (default: metrics.retentionDays)"
    ),
) -> None:
    """Drop records older than the retention window."""
    engine, paths = open_engine()
    retention = days or engine.config.metrics.retention_days
    try:
        kept, removed = prune_log(paths.metrics_log, retention)
    except MetricsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if removed:
        console.print(f"[green]✓[/green] Removed {removed} record(s) older than {retention} days; kept {kept}")
    else:
        console.print(f"[dim]○[/dim] Nothing older than {retention} days ({kept} record(s) kept)")
