"""
Claude Code settings.local.json management.

Handles reading/writing the engine's hook registrations in Claude Code's
settings file, either the user-wide one or a project's.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from claude_enforcer.errors import ConfigError
from claude_enforcer.paths import SETTINGS_LOCAL
from claude_enforcer.types import HookEvent

HOOK_COMMAND = "claude-enforcer check"
FILE_TOOLS = "Write|Edit|MultiEdit"


@dataclass(frozen=True)
class HookSpec:
    """Specification for a hook to register."""

    event: HookEvent
    matcher: str | None  # Tool matcher (e.g., "Write|Edit")
    command: str  # Command to run


ENGINE_HOOKS = (
    HookSpec(event=HookEvent.PRE_TOOL_USE, matcher=FILE_TOOLS, command=HOOK_COMMAND),
    HookSpec(event=HookEvent.POST_TOOL_USE, matcher=FILE_TOOLS, command=HOOK_COMMAND),
    HookSpec(event=HookEvent.STOP, matcher=None, command=HOOK_COMMAND),
)


def load_settings(settings_path: Path = SETTINGS_LOCAL) -> dict[str, Any]:
    """Load settings.local.json, returning empty dict if not exists."""
    if not settings_path.exists():
        return {}
    try:
        return json.loads(settings_path.read_text())
    except ValueError as e:
        raise ConfigError(f"not valid JSON: {e}", str(settings_path)) from e


def save_settings(settings: dict[str, Any], settings_path: Path = SETTINGS_LOCAL) -> None:
    """Save settings to settings.local.json."""
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps(settings, indent=2) + "\n")


def register_hook(spec: HookSpec, settings_path: Path = SETTINGS_LOCAL) -> bool:
    """
    Register a hook in settings.local.json.

    Returns True if hook was added, False if already exists.
    """
    settings = load_settings(settings_path)
    event_hooks = settings.setdefault("hooks", {}).setdefault(spec.event.value, [])

    # Find or create the matcher group
    target_group = None
    for group in event_hooks:
        if group.get("matcher") == spec.matcher:
            target_group = group
            break

    if target_group is None:
        target_group = {"matcher": spec.matcher, "hooks": []} if spec.matcher else {"hooks": []}
        event_hooks.append(target_group)

    for existing in target_group["hooks"]:
        if existing.get("command") == spec.command:
            return False  # Already exists

    target_group["hooks"].append({"type": "command", "command": spec.command})
    save_settings(settings, settings_path)
    return True


def unregister_hook(spec: HookSpec, settings_path: Path = SETTINGS_LOCAL) -> bool:
    """
    Remove a hook from settings.local.json.

    Returns True if hook was removed, False if not found.
    """
    settings = load_settings(settings_path)
    event_hooks = settings.get("hooks", {}).get(spec.event.value)
    if not event_hooks:
        return False

    for group in event_hooks:
        if group.get("matcher") != spec.matcher:
            continue
        original_len = len(group["hooks"])
        group["hooks"] = [h for h in group["hooks"] if h.get("command") != spec.command]
        if len(group["hooks"]) < original_len:
            # Clean up empty groups
            if not group["hooks"]:
                event_hooks.remove(group)
            save_settings(settings, settings_path)
            return True

    return False


def is_hook_registered(spec: HookSpec, settings_path: Path = SETTINGS_LOCAL) -> bool:
    """Check if a hook is registered."""
    settings = load_settings(settings_path)
    for group in settings.get("hooks", {}).get(spec.event.value, []):
        if group.get("matcher") == spec.matcher:
            if any(h.get("command") == spec.command for h in group["hooks"]):
                return True
    return False
