"""
Shared domain types for claude-enforcer.

Enums provide exhaustiveness checking and prevent stringly-typed errors.
"""

from enum import Enum


class HookEvent(Enum):
    """Claude Code hook event types the engine answers."""

    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    STOP = "Stop"

    @classmethod
    def parse(cls, value: str) -> "HookEvent":
        """Accept the wire name ("PreToolUse") or a short alias ("pre")."""
        aliases = {"pre": cls.PRE_TOOL_USE, "post": cls.POST_TOOL_USE, "stop": cls.STOP}
        for member in cls:
            if member.value == value:
                return member
        if value.lower() in aliases:
            return aliases[value.lower()]
        raise ValueError(f"Unknown hook event: {value!r}")


class Verdict(Enum):
    """Outcome of one validator, or of the whole event."""

    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"

    @property
    def rank(self) -> int:
        return _VERDICT_RANK[self]


_VERDICT_RANK = {Verdict.ALLOW: 0, Verdict.WARN: 1, Verdict.BLOCK: 2}


class Priority(Enum):
    """Hook priority, used for display ordering and PARTIAL enforcement."""

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.CRITICAL: 0, Priority.HIGH: 1, Priority.NORMAL: 2, Priority.LOW: 3}


class EnforcementLevel(Enum):
    """Graduated strictness of one rule category."""

    SILENT = "SILENT"
    WARNING = "WARNING"
    PARTIAL = "PARTIAL"
    FULL = "FULL"

    @property
    def step(self) -> int:
        return _LEVEL_ORDER.index(self)

    def up(self) -> "EnforcementLevel | None":
        """Next stricter level, or None at FULL."""
        index = self.step + 1
        return _LEVEL_ORDER[index] if index < len(_LEVEL_ORDER) else None

    def down(self) -> "EnforcementLevel | None":
        """Next looser level, or None at SILENT."""
        index = self.step - 1
        return _LEVEL_ORDER[index] if index >= 0 else None


_LEVEL_ORDER = [
    EnforcementLevel.SILENT,
    EnforcementLevel.WARNING,
    EnforcementLevel.PARTIAL,
    EnforcementLevel.FULL,
]


class TransitionReason(Enum):
    """Why an enforcement level changed."""

    GRADUATION = "graduation"
    ERROR_SPIKE = "error_spike"
    MANUAL = "manual"
