"""
Enforcement CLI commands - graduation, manual overrides and history.
"""

import typer
from rich.console import Console
from rich.table import Table

from claude_enforcer.commands.common import open_engine
from claude_enforcer.errors import TransitionError
from claude_enforcer.types import EnforcementLevel

app = typer.Typer(no_args_is_help=True)
console = Console()


@app.command()
def graduate(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change without saving"),
) -> None:
    """Run one graduation cycle from the metrics history."""
    engine, _ = open_engine()
    try:
        changes = engine.graduate(dry_run=dry_run)
    except TransitionError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not changes:
        console.print("[dim]○[/dim] No level changes")
        return
    prefix = "Would change" if dry_run else "Changed"
    for t in changes:
        console.print(
            f"[green]✓[/green] {prefix} {t.category}: {t.from_level.value} → {t.to_level.value} "
            f"[dim]({t.reason.value}: {t.detail})[/dim]"
        )


@app.command("set-level")
def set_level(
    category: str = typer.Argument(..., help="Rule category (hook family)"),
    level: str = typer.Argument(..., help="SILENT, WARNING, PARTIAL or FULL"),
    reason: str = typer.Option("manual override", "--reason", "-r", help="Recorded with the transition"),
) -> None:
    """Move a category to any level immediately."""
    try:
        target = EnforcementLevel(level.upper())
    except ValueError:
        choices = ", ".join(m.value for m in EnforcementLevel)
        console.print(f"[red]Error:[/red] Unknown level '{level}' (choose from {choices})")
        raise typer.Exit(1)

    engine, _ = open_engine()
    if category not in engine.categories():
        console.print(f"[yellow]![/yellow] No configured hook uses category '{category}'")

    try:
        entry = engine.controller().set_level(category, target, detail=reason)
    except TransitionError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if entry is None:
        console.print(f"[dim]○[/dim] {category} is already {target.value}")
    else:
        console.print(
            f"[green]✓[/green] {category}: {entry.from_level.value} → {entry.to_level.value}"
        )


@app.command()
def history(
    category: str | None = typer.Option(None, "--category", "-c", help="Only this category"),
) -> None:
    """Show the enforcement transition log."""
    engine, _ = open_engine()
    entries = [
        t for t in engine.store.load().history if category is None or t.category == category
    ]

    if not entries:
        console.print("[dim]No enforcement transitions recorded.[/dim]")
        return

    table = Table(title="Enforcement History")
    table.add_column("When", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("From")
    table.add_column("To", style="bold")
    table.add_column("Reason")
    table.add_column("Detail", style="dim")

    for t in entries:
        table.add_row(
            t.at.strftime("%Y-%m-%d %H:%M"),
            t.category,
            t.from_level.value,
            t.to_level.value,
            t.reason.value,
            t.detail,
        )

    console.print()
    console.print(table)
    console.print()
