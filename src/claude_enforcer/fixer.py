"""
Auto-Fixer: post-decision remediation with backup and rollback.

For each fixable hook, under an exclusive lock on the target file:

    read -> transform -> back up original -> write temp -> verify -> commit

A failed verification (or any I/O error after the backup exists) restores the
backup, so the file is either fully fixed or byte-identical to before. A fix
never changes the Decision it follows. Dry-run computes the diff and writes
nothing, backups included.
"""

import difflib
import hashlib
import json
import logging
import os
import shutil
from contextlib import nullcontext
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping

import yaml

from claude_enforcer.errors import FixApplyError
from claude_enforcer.locking import file_lock
from claude_enforcer.models import FixResult, HookDefinition, ToolUseEvent
from claude_enforcer.validators import Validator

logger = logging.getLogger(__name__)

SCRIPT_SUFFIXES = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"})
BRACKETS = {")": "(", "]": "[", "}": "{"}


# =============================================================================
# VERIFICATION
# =============================================================================


def check_brackets(text: str) -> str | None:
    """Balanced (), [] and {} outside strings and comments, or the first problem."""
    stack: list[tuple[str, int]] = []
    line = 1
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\n":
            line += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                return f"unterminated block comment starting on line {line}"
            line += text.count("\n", i, end)
            i = end + 2
            continue
        elif ch in "'\"`":
            start_line = line
            i += 1
            while i < n and text[i] != ch:
                if text[i] == "\\":
                    i += 1
                elif text[i] == "\n":
                    if ch != "`":
                        return f"unterminated string on line {start_line}"
                    line += 1
                i += 1
            if i >= n:
                return f"unterminated string on line {start_line}"
        elif ch in "([{":
            stack.append((ch, line))
        elif ch in BRACKETS:
            if not stack or stack[-1][0] != BRACKETS[ch]:
                return f"unbalanced '{ch}' on line {line}"
            stack.pop()
        i += 1
    if stack:
        opener, opened_on = stack[-1]
        return f"unclosed '{opener}' from line {opened_on}"
    return None


def verify_text(suffix: str, text: str, filename: str = "<fixed>") -> str | None:
    """Structural check for the file type. None means fine (or no check exists)."""
    suffix = suffix.lower()
    try:
        if suffix == ".py":
            compile(text, filename, "exec")
        elif suffix == ".json":
            json.loads(text)
        elif suffix in (".yaml", ".yml"):
            yaml.safe_load(text)
        elif suffix in SCRIPT_SUFFIXES:
            return check_brackets(text)
    except (SyntaxError, ValueError, yaml.YAMLError) as e:
        return f"{type(e).__name__}: {e}"
    return None


def verify_fix(suffix: str, before: str, after: str, filename: str = "<fixed>") -> str | None:
    """Problem the fix introduced, if any. Files that were already broken are not blamed on the fix."""
    problem = verify_text(suffix, after, filename)
    if problem is None or problem == verify_text(suffix, before, filename):
        return None
    return problem


# =============================================================================
# DIFFS AND BACKUPS
# =============================================================================


def unified_diff(path: str, before: str, after: str) -> str:
    return "".join(
        difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )


def diff_summary(diff: str) -> str:
    added = sum(1 for l in diff.splitlines() if l.startswith("+") and not l.startswith("+++"))
    removed = sum(1 for l in diff.splitlines() if l.startswith("-") and not l.startswith("---"))
    return f"+{added} -{removed} lines"


def backup_name(target: Path, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S%fZ")
    origin = hashlib.sha256(str(target.resolve()).encode("utf-8")).hexdigest()[:6]
    return f"{target.name}.{stamp}.{origin}.bak"


def restore_backup(backup: Path, target: Path) -> None:
    """Put the backup's exact bytes back at target (atomic replace)."""
    staging = target.with_name(f".{target.name}.enforcer-restore")
    shutil.copy2(backup, staging)
    os.replace(staging, target)


# =============================================================================
# FIXER
# =============================================================================


class AutoFixer:
    """Applies validator fixes to files on disk."""

    def __init__(
        self,
        validators: Mapping[str, Validator],
        backup_dir: Path,
        dry_run: bool = False,
        lock_timeout_s: float = 5.0,
    ) -> None:
        self.validators = validators
        self.backup_dir = backup_dir
        self.dry_run = dry_run
        self.lock_timeout_s = lock_timeout_s

    def fix(self, event: ToolUseEvent, hooks: Iterable[HookDefinition]) -> list[FixResult]:
        """Run each fixable hook's transform in turn; one fault never stops the rest."""
        results = []
        for hook in hooks:
            if not hook.fixable:
                continue
            try:
                results.append(self.fix_one(event, hook))
            except Exception as e:
                logger.warning("Fix by %s on %s failed: %s", hook.name, event.file_path, e, exc_info=True)
                results.append(
                    FixResult(
                        file_path=event.file_path,
                        backup_path=None,
                        applied=False,
                        verified=False,
                        diff_summary="not applied",
                        hook_name=hook.name,
                        error=f"{type(e).__name__}: {e}",
                    )
                )
        return results

    def fix_one(self, event: ToolUseEvent, hook: HookDefinition) -> FixResult:
        target = Path(event.file_path)
        if not event.file_path or not target.is_file():
            return self._skipped(event, hook, "file does not exist")
        validator = self.validators[hook.name]
        if not validator.match(event):
            return self._skipped(event, hook, "hook does not apply to this file")

        # Dry runs never touch the filesystem, lock files included.
        guard = nullcontext() if self.dry_run else file_lock(target, timeout_s=self.lock_timeout_s)
        with guard:
            original = target.read_bytes()
            try:
                text = original.decode("utf-8")
            except UnicodeDecodeError:
                return self._skipped(event, hook, "not a UTF-8 text file")

            fixed = validator.fix(event, text)
            if fixed is None or fixed == text:
                return FixResult(
                    file_path=str(target),
                    backup_path=None,
                    applied=False,
                    verified=True,
                    diff_summary="no changes",
                    hook_name=hook.name,
                )

            diff = unified_diff(event.file_path, text, fixed)
            if self.dry_run:
                problem = verify_fix(target.suffix, text, fixed, str(target))
                return FixResult(
                    file_path=str(target),
                    backup_path=None,
                    applied=False,
                    verified=problem is None,
                    diff_summary=f"dry run, {diff_summary(diff)}\n{diff}",
                    hook_name=hook.name,
                    error=problem,
                )
            return self._commit(target, original, fixed, diff, hook)

    def _commit(
        self, target: Path, original: bytes, fixed: str, diff: str, hook: HookDefinition
    ) -> FixResult:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        backup = self.backup_dir / backup_name(target)
        shutil.copy2(target, backup)
        if backup.read_bytes() != original:
            backup.unlink(missing_ok=True)
            raise FixApplyError(f"backup of {target} does not match the original")

        new_bytes = fixed.encode("utf-8")
        staging = target.with_name(f".{target.name}.enforcer-tmp")
        try:
            staging.write_bytes(new_bytes)
            shutil.copymode(target, staging)
            problem = verify_fix(
                target.suffix,
                original.decode("utf-8"),
                staging.read_text(encoding="utf-8"),
                str(target),
            )
            if problem:
                raise FixApplyError(f"verification failed: {problem}")
            os.replace(staging, target)
            if target.read_bytes() != new_bytes:
                raise FixApplyError("file content differs from the fix after commit")
        except (OSError, FixApplyError) as e:
            staging.unlink(missing_ok=True)
            restore_backup(backup, target)
            logger.warning("Rolled back %s fix on %s: %s", hook.name, target, e)
            return FixResult(
                file_path=str(target),
                backup_path=str(backup),
                applied=False,
                verified=False,
                diff_summary=diff_summary(diff),
                hook_name=hook.name,
                rolled_back=True,
                error=str(e),
            )

        logger.info("Applied %s fix to %s (backup %s)", hook.name, target, backup)
        return FixResult(
            file_path=str(target),
            backup_path=str(backup),
            applied=True,
            verified=True,
            diff_summary=diff_summary(diff),
            hook_name=hook.name,
        )

    def rollback(self, result: FixResult) -> None:
        """Undo an applied fix from its backup."""
        if not result.backup_path:
            raise FixApplyError(f"no backup recorded for {result.file_path}")
        self.restore(Path(result.backup_path), Path(result.file_path))

    def restore(self, backup: Path, target: Path) -> None:
        if not backup.is_file():
            raise FixApplyError(f"backup {backup} does not exist")
        with file_lock(target, timeout_s=self.lock_timeout_s):
            restore_backup(backup, target)
        logger.info("Restored %s from %s", target, backup)

    @staticmethod
    def _skipped(event: ToolUseEvent, hook: HookDefinition, reason: str) -> FixResult:
        return FixResult(
            file_path=event.file_path,
            backup_path=None,
            applied=False,
            verified=False,
            diff_summary=f"skipped: {reason}",
            hook_name=hook.name,
        )
