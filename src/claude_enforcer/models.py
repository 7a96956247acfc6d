"""
Domain records that flow through one engine invocation.

Every record is a frozen dataclass: created once, never edited. Only
MetricsRecord outlives the process (as a line in the metrics log).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from fnmatch import fnmatch
from pathlib import PurePath
from types import MappingProxyType
from typing import Any, Mapping

from claude_enforcer.types import HookEvent, Priority, Verdict

EMPTY_OPTIONS: Mapping[str, Any] = MappingProxyType({})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ToolUseEvent:
    """Canonical form of one assistant tool call, whatever shape it arrived in."""

    session_id: str
    phase: HookEvent
    tool_name: str
    file_path: str
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def file_name(self) -> str:
        return PurePath(self.file_path).name if self.file_path else ""

    @property
    def extension(self) -> str:
        return PurePath(self.file_path).suffix.lower() if self.file_path else ""


@dataclass(frozen=True)
class Matcher:
    """Which tool calls a hook cares about.

    ``tools`` is a regex matched against the whole tool name (Claude Code's
    ``"Write|Edit"`` convention); ``paths`` are glob patterns tried against
    both the full path and the file name. No paths means any file.
    """

    tools: str = ".*"
    paths: tuple[str, ...] = ()

    def accepts(self, event: ToolUseEvent) -> bool:
        if not re.fullmatch(self.tools, event.tool_name or ""):
            return False
        if not self.paths:
            return True
        if not event.file_path:
            return False
        return any(
            fnmatch(event.file_path, pattern) or fnmatch(event.file_name, pattern)
            for pattern in self.paths
        )


@dataclass(frozen=True)
class HookDefinition:
    """One configured hook. Loaded at startup, immutable afterwards."""

    name: str
    validator: str
    family: str
    priority: Priority
    phase: HookEvent
    matcher: Matcher
    timeout_ms: int
    fixable: bool = False
    options: Mapping[str, Any] = field(default_factory=lambda: EMPTY_OPTIONS)
    command: str | None = None

    @property
    def category(self) -> str:
        """Enforcement category; families double as categories."""
        return self.family


@dataclass(frozen=True)
class Violation:
    """Payload a validator attaches to a non-allow verdict."""

    hook_name: str
    severity: Verdict
    message: str
    suggested_fix: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one hook for one event."""

    hook_name: str
    verdict: Verdict
    message: str
    duration_ms: float
    timed_out: bool = False
    error: str | None = None
    family: str = ""
    priority: Priority = Priority.NORMAL
    violation: Violation | None = None

    @property
    def faulted(self) -> bool:
        return self.timed_out or self.error is not None


@dataclass(frozen=True)
class FixResult:
    """Outcome of one auto-fix attempt.

    ``applied=True`` always comes with ``verified=True``; a fix that fails
    verification is rolled back and reported with ``applied=False``.
    """

    file_path: str
    backup_path: str | None
    applied: bool
    verified: bool
    diff_summary: str
    hook_name: str = ""
    rolled_back: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook": self.hook_name,
            "filePath": self.file_path,
            "backupPath": self.backup_path,
            "applied": self.applied,
            "verified": self.verified,
            "rolledBack": self.rolled_back,
            "diffSummary": self.diff_summary,
            "error": self.error,
        }


@dataclass(frozen=True)
class Decision:
    """The single aggregate outcome for one event."""

    verdict: Verdict
    messages: tuple[str, ...] = ()
    contributing_hooks: tuple[str, ...] = ()
    faults: tuple[str, ...] = ()
    fixes: tuple[FixResult, ...] = ()

    @property
    def fixes_applied(self) -> tuple[FixResult, ...]:
        return tuple(f for f in self.fixes if f.applied)

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "messages": list(self.messages),
            "contributingHooks": list(self.contributing_hooks),
            "faults": list(self.faults),
            "fixesApplied": [f.to_dict() for f in self.fixes],
        }


ALLOW = Decision(verdict=Verdict.ALLOW)


@dataclass(frozen=True)
class MetricsRecord:
    """One line of the metrics log."""

    hook_name: str
    category: str
    verdict: Verdict
    duration_ms: float
    timestamp: datetime
    timed_out: bool = False
    error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook": self.hook_name,
            "category": self.category,
            "verdict": self.verdict.value,
            "durationMs": round(self.duration_ms, 3),
            "timestamp": self.timestamp.isoformat(),
            "timedOut": self.timed_out,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetricsRecord":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            hook_name=str(data["hook"]),
            category=str(data["category"]),
            verdict=Verdict(data["verdict"]),
            duration_ms=float(data.get("durationMs", 0.0)),
            timestamp=timestamp,
            timed_out=bool(data.get("timedOut", False)),
            error=bool(data.get("error", False)),
        )

    @classmethod
    def from_result(cls, result: ExecutionResult, category: str) -> "MetricsRecord":
        return cls(
            hook_name=result.hook_name,
            category=category,
            verdict=result.verdict,
            duration_ms=result.duration_ms,
            timestamp=utc_now(),
            timed_out=result.timed_out,
            error=result.error is not None,
        )
