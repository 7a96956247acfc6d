"""
Path constants and utilities for claude-enforcer.

State lives under ~/.claude/enforcer/ by default, next to Claude Code's own
files. Set CLAUDE_ENFORCER_HOME to relocate it (tests, per-project setups).
"""

import os
from dataclasses import dataclass
from pathlib import Path

# Base directories
CLAUDE_HOME = Path.home() / ".claude"
DEFAULT_ENFORCER_HOME = CLAUDE_HOME / "enforcer"
HOME_ENV_VAR = "CLAUDE_ENFORCER_HOME"

# Settings file (Claude Code's local settings)
SETTINGS_LOCAL = CLAUDE_HOME / "settings.local.json"


@dataclass(frozen=True)
class EnforcerPaths:
    """Every file the engine owns, derived from one home directory."""

    home: Path

    @property
    def config_file(self) -> Path:
        return self.home / "config.yaml"

    @property
    def snapshot_file(self) -> Path:
        return self.home / "enforcement.json"

    @property
    def metrics_log(self) -> Path:
        return self.home / "metrics.jsonl"

    @property
    def backup_dir(self) -> Path:
        return self.home / "backups"

    @property
    def log_file(self) -> Path:
        return self.home / "enforcer.log"

    def ensure_dirs(self) -> None:
        """Create required directories if they don't exist."""
        self.home.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)


def default_paths() -> EnforcerPaths:
    """Resolve the engine home from the environment, falling back to ~/.claude."""
    override = os.environ.get(HOME_ENV_VAR)
    return EnforcerPaths(home=Path(override).expanduser() if override else DEFAULT_ENFORCER_HOME)


def project_settings(project_dir: Path) -> Path:
    """Claude Code's per-project local settings file."""
    return project_dir / ".claude" / "settings.local.json"
