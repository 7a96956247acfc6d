"""
Helpers shared by the CLI command modules.
"""

import typer
from rich.console import Console

from claude_enforcer.dispatcher import Engine
from claude_enforcer.errors import ConfigError
from claude_enforcer.logging_setup import configure_logging
from claude_enforcer.paths import EnforcerPaths, default_paths

# Exit code when configuration is unusable; the hook refuses to run.
CONFIG_EXIT_CODE = 2

err_console = Console(stderr=True)


def open_engine(verbose: bool = False) -> tuple[Engine, EnforcerPaths]:
    """Configure logging and load the engine, exiting 2 on bad configuration."""
    paths = default_paths()
    configure_logging(paths.log_file, verbose=verbose)
    try:
        return Engine.from_paths(paths), paths
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(CONFIG_EXIT_CODE) from e
