"""
Main CLI entry point for claude-enforcer.

Usage:
    claude-enforcer check [--input JSON] [--phase PHASE] [--verbose]
    claude-enforcer fix FILE [--dry-run]
    claude-enforcer rollback BACKUP FILE
    claude-enforcer status [--project]
    claude-enforcer install [--project] / uninstall [--project]
    claude-enforcer enforcement {graduate,set-level,history}
    claude-enforcer metrics {show,prune}
"""

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console

from claude_enforcer.commands import enforcement, metrics
from claude_enforcer.commands.common import err_console, open_engine
from claude_enforcer.dispatcher import bypass_requested, normalize, render
from claude_enforcer.errors import EnforcerError
from claude_enforcer.types import HookEvent

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="claude-enforcer",
    help="Tool-use enforcement hooks for Claude Code",
    no_args_is_help=True,
)
console = Console()

# Register command groups
app.add_typer(enforcement.app, name="enforcement", help="Inspect and change enforcement levels")
app.add_typer(metrics.app, name="metrics", help="Inspect and prune hook metrics")


def _phase_of(raw: str, default_phase: HookEvent) -> HookEvent | None:
    try:
        return normalize(raw, default_phase).phase
    except (ValueError, RecursionError):
        return None


@app.command()
def check(
    input_json: str | None = typer.Option(
        None, "--input", "-i", help="Hook payload as JSON (default: read stdin)"
    ),
    phase: str = typer.Option(
        HookEvent.PRE_TOOL_USE.value, "--phase", "-p", help="Phase for payloads that don't name one"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr as well"),
) -> None:
    """Decide one tool-use event (the hook entry point). Exits 2 to block."""
    try:
        default_phase = HookEvent.parse(phase)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--phase")

    engine, _ = open_engine(verbose)
    raw = input_json if input_json is not None else sys.stdin.read()
    decision = engine.dispatch(raw, default_phase)

    rendered = render(decision)
    typer.echo(rendered.stdout)
    if rendered.stderr:
        typer.echo(rendered.stderr, err=True)
    sys.stdout.flush()
    sys.stderr.flush()

    # Session end: graduate out of band, after the decision is already out.
    if _phase_of(raw, default_phase) is HookEvent.STOP and not bypass_requested():
        try:
            for t in engine.graduate():
                logger.info("%s: %s -> %s (%s)", t.category, t.from_level.value, t.to_level.value, t.reason.value)
        except Exception:
            logger.warning("Graduation at session end failed", exc_info=True)

    raise typer.Exit(rendered.exit_code)


@app.command()
def fix(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to fix"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the diff, write nothing"),
) -> None:
    """Apply every matching auto-fix to an existing file."""
    engine, _ = open_engine()
    results = engine.fix_file(file.resolve(), dry_run=dry_run)

    if not results:
        console.print(f"[dim]○[/dim] No fixable hooks apply to {file}")
        return

    failed = False
    for result in results:
        if result.applied:
            console.print(f"[green]✓[/green] {result.hook_name}: {result.diff_summary}")
            console.print(f"  [dim]Backup: {result.backup_path}[/dim]")
            console.print(f"  [dim]Undo: claude-enforcer rollback {result.backup_path} {result.file_path}[/dim]")
        elif result.error:
            failed = True
            rolled = " (rolled back)" if result.rolled_back else ""
            console.print(f"[red]✗[/red] {result.hook_name}: {result.error}{rolled}")
        else:
            # Dry-run output carries the unified diff; print it verbatim.
            console.print(f"[dim]○[/dim] {result.hook_name}: ", end="")
            console.print(result.diff_summary, markup=False, highlight=False)

    if failed:
        raise typer.Exit(1)


@app.command()
def rollback(
    backup: Path = typer.Argument(..., exists=True, dir_okay=False, help="Backup written by a fix"),
    file: Path = typer.Argument(..., help="File to restore"),
) -> None:
    """Restore a file byte-for-byte from a fix backup."""
    engine, _ = open_engine()
    try:
        engine.fixer().restore(backup, file)
    except EnforcerError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Restored {file} from {backup}")


@app.command()
def status(
    project: bool = typer.Option(False, "--project", help="Check this project's settings instead of the user's"),
) -> None:
    """Show hooks, registrations and enforcement levels."""
    from claude_enforcer.commands.install import show_status

    engine, _ = open_engine()
    show_status(engine, project=project)


@app.command()
def install(
    project: bool = typer.Option(False, "--project", help="Register in ./.claude/settings.local.json"),
) -> None:
    """Register the engine's hooks with Claude Code and write the default config."""
    from claude_enforcer.commands.install import run_install
    from claude_enforcer.paths import default_paths

    run_install(default_paths(), project=project)


@app.command()
def uninstall(
    project: bool = typer.Option(False, "--project", help="Remove from ./.claude/settings.local.json"),
) -> None:
    """Remove the engine's hooks from Claude Code (config and state are kept)."""
    from claude_enforcer.commands.install import run_uninstall

    run_uninstall(project=project)


if __name__ == "__main__":
    app()
