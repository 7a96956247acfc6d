"""
The Validator contract.

A validator is a stateless business rule: it decides whether it applies to an
event (match), inspects it (run) and, when it can, rewrites the file text
(fix). Validators never touch the filesystem for writing; the Auto-Fixer owns
every write.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from claude_enforcer.models import EMPTY_OPTIONS, ToolUseEvent, Violation
from claude_enforcer.types import Verdict


class Validator(ABC):
    """Base class for every hook implementation."""

    #: Catalog id used in configuration (``validator: <id>``).
    id: str = ""
    #: Severity used when a hook definition does not override it.
    default_severity: Verdict = Verdict.BLOCK

    def __init__(self, hook_name: str, options: Mapping[str, Any] = EMPTY_OPTIONS) -> None:
        self.hook_name = hook_name
        self.options = options
        self.severity = Verdict(options.get("severity", self.default_severity.value))

    def match(self, event: ToolUseEvent) -> bool:
        """Whether this validator has anything to say about the event."""
        return True

    @abstractmethod
    def run(self, event: ToolUseEvent) -> Violation | None:
        """Inspect the event. None means allow."""

    @classmethod
    def supports_fix(cls) -> bool:
        return cls.fix is not Validator.fix

    def fix(self, event: ToolUseEvent, text: str) -> str | None:
        """Return the rewritten file text, or None when nothing changes."""
        return None

    def violation(self, message: str, suggested_fix: str | None = None) -> Violation:
        return Violation(
            hook_name=self.hook_name,
            severity=self.severity,
            message=message,
            suggested_fix=suggested_fix,
        )


def event_text(event: ToolUseEvent) -> str:
    """Content carried by the event, or the file on disk when the event has none.

    Post-operation events for Edit tools carry no full content; by then the
    file on disk is the result of the operation.
    """
    if event.content:
        return event.content
    if not event.file_path:
        return ""
    path = Path(event.file_path)
    if not path.is_file():
        return ""
    return path.read_text(encoding="utf-8", errors="replace")
