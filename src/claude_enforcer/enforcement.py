"""
Enforcement Level Controller.

Each rule category (hook family) sits at one of SILENT, WARNING, PARTIAL or
FULL. The level decides what a category's verdicts are worth:

    SILENT   hooks of the category are not selected at all
    WARNING  blocks are downgraded to warnings
    PARTIAL  only critical-priority hooks may block
    FULL     verdicts pass through unchanged

Levels live in an immutable EnforcementSnapshot, read once per invocation.
The only way to change a level is transition(), which returns a new
snapshot. Graduation (moving up) needs a violation rate below threshold for
N consecutive windows since the category's last change; de-escalation on an
error spike or manual override is immediate. Graduation runs out of band
(session end or the ``enforcement graduate`` command), never while an event
is being decided.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from claude_enforcer.config import GraduationConfig
from claude_enforcer.errors import ConfigError, TransitionError
from claude_enforcer.locking import file_lock
from claude_enforcer.metrics import MetricsReader
from claude_enforcer.models import ExecutionResult, HookDefinition, utc_now
from claude_enforcer.types import EnforcementLevel, Priority, TransitionReason, Verdict

logger = logging.getLogger(__name__)

DEFAULT_LEVEL = EnforcementLevel.FULL
HISTORY_LIMIT = 100


@dataclass(frozen=True)
class Transition:
    category: str
    from_level: EnforcementLevel
    to_level: EnforcementLevel
    reason: TransitionReason
    at: datetime
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "from": self.from_level.value,
            "to": self.to_level.value,
            "reason": self.reason.value,
            "at": self.at.isoformat(),
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transition":
        return cls(
            category=str(data["category"]),
            from_level=EnforcementLevel(data["from"]),
            to_level=EnforcementLevel(data["to"]),
            reason=TransitionReason(data["reason"]),
            at=datetime.fromisoformat(data["at"]),
            detail=str(data.get("detail", "")),
        )


@dataclass(frozen=True)
class EnforcementSnapshot:
    """Per-category levels at one point in time. Never edited in place."""

    levels: Mapping[str, EnforcementLevel] = field(
        default_factory=lambda: MappingProxyType({})
    )
    history: tuple[Transition, ...] = ()
    version: int = 0

    def level_for(self, category: str) -> EnforcementLevel:
        return self.levels.get(category, DEFAULT_LEVEL)

    def last_transition(self, category: str) -> Transition | None:
        for entry in reversed(self.history):
            if entry.category == category:
                return entry
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "levels": {k: v.value for k, v in sorted(self.levels.items())},
            "history": [t.to_dict() for t in self.history],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnforcementSnapshot":
        return cls(
            levels=MappingProxyType(
                {str(k): EnforcementLevel(v) for k, v in dict(data.get("levels", {})).items()}
            ),
            history=tuple(Transition.from_dict(t) for t in data.get("history", [])),
            version=int(data.get("version", 0)),
        )

    @classmethod
    def seeded(cls, seed: Mapping[str, EnforcementLevel]) -> "EnforcementSnapshot":
        return cls(levels=MappingProxyType(dict(seed)))


# =============================================================================
# PURE FUNCTIONS
# =============================================================================


def transition(
    snapshot: EnforcementSnapshot,
    category: str,
    target: EnforcementLevel,
    reason: TransitionReason,
    *,
    detail: str = "",
    now: datetime | None = None,
) -> EnforcementSnapshot:
    """The single way to change a level. Returns a new snapshot."""
    current = snapshot.level_for(category)
    if target is current:
        return snapshot
    distance = target.step - current.step
    if reason is not TransitionReason.MANUAL and abs(distance) != 1:
        raise TransitionError(
            f"{category}: {current.value} -> {target.value} skips levels ({reason.value})"
        )
    if reason is TransitionReason.GRADUATION and distance < 0:
        raise TransitionError(f"{category}: graduation only moves up")
    if reason is TransitionReason.ERROR_SPIKE and distance > 0:
        raise TransitionError(f"{category}: error spikes only move down")

    entry = Transition(
        category=category,
        from_level=current,
        to_level=target,
        reason=reason,
        at=now or utc_now(),
        detail=detail,
    )
    levels = dict(snapshot.levels)
    levels[category] = target
    return EnforcementSnapshot(
        levels=MappingProxyType(levels),
        history=(snapshot.history + (entry,))[-HISTORY_LIMIT:],
        version=snapshot.version + 1,
    )


def apply_level(
    result: ExecutionResult, hook: HookDefinition, level: EnforcementLevel
) -> ExecutionResult:
    """Scale one hook's verdict by its category's enforcement level."""
    if result.verdict is Verdict.ALLOW or level is EnforcementLevel.FULL:
        return result
    if level is EnforcementLevel.SILENT:
        return replace(result, verdict=Verdict.ALLOW)
    if result.verdict is Verdict.BLOCK:
        may_block = level is EnforcementLevel.PARTIAL and hook.priority is Priority.CRITICAL
        if not may_block:
            return replace(result, verdict=Verdict.WARN)
    return result


# =============================================================================
# PERSISTENCE
# =============================================================================


class SnapshotStore:
    """Reads and atomically replaces the enforcement snapshot file."""

    def __init__(self, path: Path, seed: Mapping[str, EnforcementLevel] | None = None) -> None:
        self.path = path
        self.seed = dict(seed or {})

    def load(self) -> EnforcementSnapshot:
        """Read the snapshot; configured seed levels fill categories it lacks."""
        if not self.path.exists():
            return EnforcementSnapshot.seeded(self.seed)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            snapshot = EnforcementSnapshot.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ConfigError(f"unreadable enforcement snapshot: {e}", str(self.path)) from e
        missing = {k: v for k, v in self.seed.items() if k not in snapshot.levels}
        if missing:
            snapshot = replace(
                snapshot, levels=MappingProxyType({**missing, **snapshot.levels})
            )
        return snapshot

    def save(self, snapshot: EnforcementSnapshot, expected_version: int) -> None:
        """Replace the snapshot unless another writer got there first."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with file_lock(self.path):
            on_disk = self.load().version if self.path.exists() else 0
            if on_disk != expected_version:
                raise TransitionError(
                    f"snapshot changed underneath us (expected v{expected_version}, found v{on_disk})"
                )
            tmp_path = self.path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(snapshot.to_dict(), indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(self.path)
        logger.info("Saved enforcement snapshot v%d to %s", snapshot.version, self.path)


# =============================================================================
# CONTROLLER
# =============================================================================


class EnforcementController:
    """Evaluates graduation from metrics history and persists the result."""

    def __init__(
        self,
        store: SnapshotStore,
        reader: MetricsReader,
        graduation: GraduationConfig = GraduationConfig(),
    ) -> None:
        self.store = store
        self.reader = reader
        self.graduation = graduation

    def evaluate(
        self,
        snapshot: EnforcementSnapshot,
        categories: Iterable[str],
        now: datetime | None = None,
    ) -> EnforcementSnapshot:
        """One graduation cycle: at most one step per category."""
        now = now or utc_now()
        g = self.graduation
        sustain = timedelta(days=g.window_days * g.required_windows)

        for category in sorted(set(categories)):
            level = snapshot.level_for(category)
            windows = self.reader.window_stats(category, g.window_days, g.required_windows, now)
            latest = windows[0]

            lower = level.down()
            if lower is not None and latest.runs >= g.min_samples and latest.error_rate >= g.error_spike_threshold:
                snapshot = transition(
                    snapshot, category, lower, TransitionReason.ERROR_SPIKE,
                    detail=f"error rate {latest.error_rate:.0%} over {latest.runs} runs",
                    now=now,
                )
                logger.warning("De-escalated %s to %s: error spike", category, lower.value)
                continue

            higher = level.up()
            # Silent categories produce no metrics; they only leave SILENT by hand.
            if higher is None or level is EnforcementLevel.SILENT:
                continue
            last = snapshot.last_transition(category)
            if last is not None and now - last.at < sustain:
                continue
            clean = all(
                w.completed >= g.min_samples and w.violation_rate < g.violation_threshold
                for w in windows
            )
            if clean:
                rates = ", ".join(f"{w.violation_rate:.1%}" for w in windows)
                snapshot = transition(
                    snapshot, category, higher, TransitionReason.GRADUATION,
                    detail=f"violation rates {rates}", now=now,
                )
                logger.info("Graduated %s to %s", category, higher.value)
        return snapshot

    def graduate(
        self,
        categories: Iterable[str],
        now: datetime | None = None,
        dry_run: bool = False,
    ) -> list[Transition]:
        """Load, evaluate and (unless dry_run) persist. Returns the new transitions."""
        before = self.store.load()
        after = self.evaluate(before, categories, now)
        added = after.version - before.version
        changes = list(after.history[-added:]) if added else []
        if changes and not dry_run:
            self.store.save(after, expected_version=before.version)
        return changes

    def set_level(
        self, category: str, level: EnforcementLevel, detail: str = "manual override"
    ) -> Transition | None:
        """Manual override; may move any distance. None when already there."""
        before = self.store.load()
        after = transition(before, category, level, TransitionReason.MANUAL, detail=detail)
        if after is before:
            return None
        self.store.save(after, expected_version=before.version)
        return after.history[-1]
