"""
Duplicate-file naming rule.

Blocks files like Profile_improved.tsx or api_v2.ts that duplicate an
existing file instead of editing it.
"""

import re
from pathlib import PurePath

from claude_enforcer.models import ToolUseEvent, Violation
from claude_enforcer.validators.base import Validator

DUPLICATE_SUFFIXES = (
    "improved",
    "enhanced",
    "v\\d+",
    "fixed",
    "updated",
    "new",
    "final",
    "refactored",
    "optimized",
    "better",
)

SUFFIX_PATTERN = re.compile(
    r"^(?P<stem>.+?)[_-](?P<suffix>" + "|".join(DUPLICATE_SUFFIXES) + r")$",
    re.IGNORECASE,
)


def canonical_name(file_name: str) -> str | None:
    """Profile_improved.tsx -> Profile.tsx; None when the name is fine."""
    path = PurePath(file_name)
    stem = path.name[: -len(path.suffix)] if path.suffix else path.name
    match = SUFFIX_PATTERN.match(stem)
    if match is None:
        return None
    return match.group("stem") + path.suffix


class ImprovedFileNames(Validator):
    id = "improved-file-names"

    def match(self, event: ToolUseEvent) -> bool:
        return bool(event.file_path)

    def run(self, event: ToolUseEvent) -> Violation | None:
        canonical = canonical_name(event.file_name)
        if canonical is None:
            return None
        canonical_path = str(PurePath(event.file_path).with_name(canonical))
        return self.violation(
            f"Don't create {event.file_name}: it duplicates {canonical}.",
            suggested_fix=f"Edit the original file {canonical_path} instead "
            f"(use the Edit tool on {canonical}).",
        )
