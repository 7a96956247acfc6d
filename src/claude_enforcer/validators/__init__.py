"""
Validator catalog.

Configuration refers to validators by id; the catalog is closed, so a typo in
configuration is a ConfigError at startup rather than a silent no-op.
"""

from claude_enforcer.models import HookDefinition
from claude_enforcer.validators.banned_docs import BannedDocs
from claude_enforcer.validators.base import Validator, event_text
from claude_enforcer.validators.command import CommandValidator
from claude_enforcer.validators.debug_print import DebugPrint
from claude_enforcer.validators.naming import ImprovedFileNames

CATALOG: dict[str, type[Validator]] = {
    cls.id: cls for cls in (ImprovedFileNames, DebugPrint, BannedDocs, CommandValidator)
}


def build_validator(hook: HookDefinition) -> Validator:
    """Instantiate the validator a hook definition names."""
    cls = CATALOG[hook.validator]
    if cls is CommandValidator:
        return CommandValidator(
            hook.name,
            hook.options,
            command=hook.command,
            timeout_s=hook.timeout_ms / 1000,
        )
    return cls(hook.name, hook.options)


__all__ = [
    "CATALOG",
    "BannedDocs",
    "CommandValidator",
    "DebugPrint",
    "ImprovedFileNames",
    "Validator",
    "build_validator",
    "event_text",
]
