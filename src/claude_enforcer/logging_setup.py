"""
Logging setup for the hook process.

stdout and stderr belong to the assistant while a hook runs, so the engine
always logs to a file and only mirrors to stderr (through rich) on request.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(log_file: Path | None, verbose: bool = False) -> None:
    """Install handlers on the package logger. Safe to call more than once."""
    root = logging.getLogger("claude_enforcer")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.propagate = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            # Unwritable home: fall through to stderr-only logging.
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(file_handler)

    if verbose or not root.handlers:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            level=logging.DEBUG if verbose else logging.WARNING,
        )
        root.addHandler(console_handler)
