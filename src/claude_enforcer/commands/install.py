"""
Install command - registers the engine with Claude Code and seeds its home.

Registration is idempotent: hooks already present in settings.local.json are
left alone, and an existing config.yaml is never overwritten.
"""

from pathlib import Path

from rich.console import Console
from rich.table import Table

from claude_enforcer import paths as enforcer_paths
from claude_enforcer.config import DEFAULT_CONFIG
from claude_enforcer.dispatcher import Engine
from claude_enforcer.paths import EnforcerPaths, project_settings
from claude_enforcer.settings import ENGINE_HOOKS, HookSpec, is_hook_registered, register_hook, unregister_hook

console = Console()


def settings_file(project: bool) -> Path:
    """settings.local.json of the current project, or the user-wide one."""
    return project_settings(Path.cwd()) if project else enforcer_paths.SETTINGS_LOCAL


def describe(spec: HookSpec) -> str:
    return f"{spec.event.value} ({spec.matcher})" if spec.matcher else spec.event.value


def write_default_config(paths: EnforcerPaths) -> bool:
    """Write the built-in configuration if none exists. Returns True if written."""
    paths.ensure_dirs()
    if paths.config_file.exists():
        return False
    paths.config_file.write_text(DEFAULT_CONFIG, encoding="utf-8")
    return True


def run_install(paths: EnforcerPaths, project: bool = False) -> None:
    """Main install routine."""
    target = settings_file(project)
    console.print("\n[bold]Installing claude-enforcer...[/bold]\n")

    if write_default_config(paths):
        console.print(f"[green]✓[/green] Wrote default configuration: {paths.config_file}")
    else:
        console.print(f"[dim]○[/dim] Keeping existing configuration: {paths.config_file}")

    for spec in ENGINE_HOOKS:
        if register_hook(spec, target):
            console.print(f"[green]✓[/green] Registered: {describe(spec)}")
        else:
            console.print(f"[dim]○[/dim] Already registered: {describe(spec)}")

    console.print(f"\n[dim]Hooks written to {target}[/dim]")
    console.print("\n[green]Installation complete![/green]\n")


def run_uninstall(project: bool = False) -> None:
    """Remove the engine's hook registrations; state and config are kept."""
    target = settings_file(project)
    for spec in ENGINE_HOOKS:
        if unregister_hook(spec, target):
            console.print(f"[green]✓[/green] Removed: {describe(spec)}")
        else:
            console.print(f"[dim]○[/dim] Was not registered: {describe(spec)}")


def show_status(engine: Engine, project: bool = False) -> None:
    """Show registrations, configured hooks and enforcement levels."""
    target = settings_file(project)

    registrations = Table(title="Claude Code Registration")
    registrations.add_column("Hook event", style="cyan")
    registrations.add_column("Enabled", style="bold")
    for spec in ENGINE_HOOKS:
        enabled = is_hook_registered(spec, target)
        registrations.add_row(describe(spec), "[green]Yes[/green]" if enabled else "[dim]No[/dim]")

    hooks = Table(title="Configured Hooks")
    hooks.add_column("Hook", style="cyan")
    hooks.add_column("Phase")
    hooks.add_column("Family")
    hooks.add_column("Priority")
    hooks.add_column("Timeout", justify="right", style="dim")
    hooks.add_column("Fixable")
    for hook in engine.registry:
        enabled = engine.registry.family_enabled(hook.family)
        hooks.add_row(
            hook.name if enabled else f"[dim]{hook.name} (disabled)[/dim]",
            hook.phase.value,
            hook.family,
            hook.priority.value,
            f"{hook.timeout_ms}ms",
            "Yes" if hook.fixable else "",
        )

    levels = Table(title="Enforcement Levels")
    levels.add_column("Category", style="cyan")
    levels.add_column("Level", style="bold")
    levels.add_column("Last change", style="dim")
    for category in sorted(engine.categories()):
        last = engine.snapshot.last_transition(category)
        levels.add_row(
            category,
            engine.snapshot.level_for(category).value,
            f"{last.at:%Y-%m-%d} ({last.reason.value})" if last else "",
        )

    console.print()
    console.print(registrations)
    console.print(hooks)
    console.print(levels)
    console.print(f"\n[dim]Home: {engine.paths.home}[/dim]")
    console.print()
