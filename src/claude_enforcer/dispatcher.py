"""
Event Dispatcher: the engine's entry point.

    raw input -> normalize -> select -> execute -> scale by level -> aggregate
              -> [post-operation, allowed or warned] auto-fix
              -> metrics (always, best-effort) -> rendered decision

Normalization happens here and nowhere else: every other component sees a
ToolUseEvent and never branches on the shape the input arrived in.
"""

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from claude_enforcer.aggregator import aggregate
from claude_enforcer.config import EngineConfig, load_config
from claude_enforcer.enforcement import (
    EnforcementController,
    EnforcementSnapshot,
    SnapshotStore,
    Transition,
    apply_level,
)
from claude_enforcer.executor import ParallelExecutor
from claude_enforcer.fixer import AutoFixer
from claude_enforcer.metrics import MetricsReader, MetricsRecorder
from claude_enforcer.models import ALLOW, Decision, ExecutionResult, FixResult, ToolUseEvent
from claude_enforcer.paths import EnforcerPaths
from claude_enforcer.registry import HookRegistry
from claude_enforcer.types import HookEvent, Verdict

logger = logging.getLogger(__name__)

BYPASS_ENV_VAR = "CLAUDE_ENFORCER_BYPASS"
BLOCK_EXIT_CODE = 2
# Legacy flat payloads came from write hooks only.
FLAT_TOOL_NAME = "Write"
ENGINE_FAULT_MESSAGE = "claude-enforcer hit an internal error and allowed the operation; see its log"


# =============================================================================
# NORMALIZATION
# =============================================================================


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _edit_content(tool_input: dict[str, Any]) -> str:
    """Content of Write (content), Edit (new_string) or MultiEdit (edits[].new_string)."""
    if _text(tool_input.get("content")):
        return tool_input["content"]
    if _text(tool_input.get("new_string")):
        return tool_input["new_string"]
    edits = tool_input.get("edits")
    if isinstance(edits, list):
        return "\n".join(
            _text(e.get("new_string")) for e in edits if isinstance(e, dict)
        )
    return ""


def normalize(raw: Any, default_phase: HookEvent = HookEvent.PRE_TOOL_USE) -> ToolUseEvent:
    """Turn a flat or nested hook payload into the canonical event.

    ``raw`` may be JSON text or an already-decoded mapping. Missing fields
    become empty strings. Raises ValueError only when the input is not a JSON
    object at all or names a phase the engine does not handle.
    """
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError(f"expected a JSON object, got {type(raw).__name__}")

    nested = "tool_input" in raw or "hook_event_name" in raw or "session_id" in raw
    tool_input = raw.get("tool_input")
    if not isinstance(tool_input, dict):
        tool_input = {}

    phase_name = _text(raw.get("hook_event_name")) or _text(raw.get("phase"))
    phase = HookEvent.parse(phase_name) if phase_name else default_phase

    file_path = (
        _text(tool_input.get("file_path"))
        or _text(tool_input.get("filePath"))
        or _text(raw.get("file_path"))
        or _text(raw.get("filePath"))
    )
    content = _edit_content(tool_input) or _text(raw.get("content"))
    tool_name = _text(raw.get("tool_name")) or _text(raw.get("toolName"))
    if not tool_name and not nested:
        tool_name = FLAT_TOOL_NAME

    return ToolUseEvent(
        session_id=_text(raw.get("session_id")) or _text(raw.get("sessionId")),
        phase=phase,
        tool_name=tool_name,
        file_path=file_path,
        content=content,
    )


def bypass_requested() -> bool:
    return os.environ.get(BYPASS_ENV_VAR, "").strip().lower() in ("1", "true", "yes")


# =============================================================================
# RENDERING
# =============================================================================


@dataclass(frozen=True)
class Rendered:
    """What the hook process writes and how it exits."""

    exit_code: int
    stderr: str
    stdout: str


def render(decision: Decision) -> Rendered:
    """Exit 2 on block, 0 otherwise. Messages go to stderr, JSON to stdout."""
    body = "\n".join(decision.messages)
    if decision.verdict is Verdict.BLOCK:
        stderr = f"Blocked by claude-enforcer:\n{body}" if body else "Blocked by claude-enforcer"
    elif decision.verdict is Verdict.WARN:
        stderr = f"claude-enforcer warning:\n{body}" if body else ""
    else:
        stderr = body
    return Rendered(
        exit_code=BLOCK_EXIT_CODE if decision.verdict is Verdict.BLOCK else 0,
        stderr=stderr,
        stdout=json.dumps(decision.to_dict()),
    )


# =============================================================================
# ENGINE
# =============================================================================


class Engine:
    """One invocation's worth of configuration, snapshot and hooks."""

    def __init__(
        self,
        config: EngineConfig,
        paths: EnforcerPaths,
        snapshot: EnforcementSnapshot | None = None,
    ) -> None:
        self.config = config
        self.paths = paths
        self.store = SnapshotStore(paths.snapshot_file, seed=config.enforcement_level)
        self.snapshot = snapshot if snapshot is not None else self.store.load()
        self.registry = HookRegistry.from_config(config)
        self.executor = ParallelExecutor(self.registry.validators, config.max_concurrency)

    @classmethod
    def from_paths(cls, paths: EnforcerPaths) -> "Engine":
        """Load everything from disk. Raises ConfigError (fail closed)."""
        return cls(load_config(paths.config_file), paths)

    def dispatch(self, raw: Any, default_phase: HookEvent = HookEvent.PRE_TOOL_USE) -> Decision:
        """Decide one raw event. Never raises; engine faults degrade to allow."""
        if bypass_requested():
            logger.info("%s is set; allowing without checks", BYPASS_ENV_VAR)
            return ALLOW
        try:
            event = normalize(raw, default_phase)
        except (ValueError, RecursionError) as e:
            logger.warning("Could not normalize hook input, allowing: %s", e)
            return ALLOW
        try:
            return self.decide(event)
        except Exception:
            logger.error("Engine failure on %s %s; allowing", event.phase.value, event.file_path, exc_info=True)
            return Decision(verdict=Verdict.ALLOW, messages=(ENGINE_FAULT_MESSAGE,))

    def decide(self, event: ToolUseEvent) -> Decision:
        """Run the pipeline for a normalized event."""
        hooks = self.registry.select(event, self.snapshot)
        if not hooks:
            return ALLOW
        by_name = {h.name: h for h in hooks}
        recorder = MetricsRecorder(self.paths.metrics_log, self.config.metrics.queue_size).start()
        try:
            raw_results = self.executor.run(event, hooks, self.config.deadline_for(event.phase))
            results = []
            for result in raw_results:
                hook = by_name[result.hook_name]
                scaled = apply_level(result, hook, self.snapshot.level_for(hook.category))
                results.append(scaled)
                recorder.record(scaled, hook.category)
            decision = aggregate(results, self.config.messages)
            logger.info(
                "%s %s %s -> %s (%d hooks)",
                event.phase.value, event.tool_name, event.file_path, decision.verdict.value, len(hooks),
            )
            if self._should_fix(event, decision):
                fixes = self.run_fixes(event, results)
                if fixes:
                    decision = replace(decision, fixes=tuple(fixes))
            return decision
        finally:
            recorder.close()

    def _should_fix(self, event: ToolUseEvent, decision: Decision) -> bool:
        return (
            self.config.auto_fix
            and event.phase is HookEvent.POST_TOOL_USE
            and decision.verdict is not Verdict.BLOCK
        )

    def run_fixes(self, event: ToolUseEvent, results: list[ExecutionResult]) -> list[FixResult]:
        """Fix with every fixable hook that flagged the event."""
        flagged = {r.hook_name for r in results if r.verdict is not Verdict.ALLOW and not r.faulted}
        hooks = [h for h in self.registry.fixable(self.registry.hooks) if h.name in flagged]
        if not hooks:
            return []
        return self.fixer().fix(event, hooks)

    def fixer(self, dry_run: bool | None = None) -> AutoFixer:
        return AutoFixer(
            self.registry.validators,
            self.paths.backup_dir,
            dry_run=self.config.dry_run if dry_run is None else dry_run,
        )

    def fix_file(self, file_path: Path, dry_run: bool = False) -> list[FixResult]:
        """Apply every matching post-operation fix to an existing file."""
        event = ToolUseEvent(
            session_id="cli",
            phase=HookEvent.POST_TOOL_USE,
            tool_name=FLAT_TOOL_NAME,
            file_path=str(file_path),
            content="",
        )
        hooks = self.registry.fixable(self.registry.select(event, self.snapshot))
        return self.fixer(dry_run).fix(event, hooks)

    def categories(self) -> set[str]:
        return self.registry.families() | set(self.config.enforcement_level)

    def controller(self) -> EnforcementController:
        return EnforcementController(
            self.store, MetricsReader(self.paths.metrics_log), self.config.graduation
        )

    def graduate(self, dry_run: bool = False) -> list[Transition]:
        """One out-of-band graduation cycle over every known category."""
        return self.controller().graduate(self.categories(), dry_run=dry_run)
