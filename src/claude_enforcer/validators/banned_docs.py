"""
Banned document types: status, summary and completion announcements.
"""

import re

from claude_enforcer.models import ToolUseEvent, Violation
from claude_enforcer.validators.base import Validator

BANNED_ENDINGS = (
    "SUMMARY.MD",
    "REPORT.MD",
    "COMPLETE.MD",
    "COMPLETION.MD",
    "FIXED.MD",
    "DONE.MD",
    "FINISHED.MD",
    "STATUS.MD",
    "FINAL.MD",
)

BANNED_PREFIX = re.compile(r"^(COMPLETE|DONE|FIXED|FINISHED|FINAL)[-_]", re.IGNORECASE)


def banned_reason(file_name: str) -> str | None:
    upper = file_name.upper()
    if not upper.endswith(".MD"):
        return None
    for ending in BANNED_ENDINGS:
        if upper.endswith(ending):
            return f"ends with {ending[:-3]}"
    if BANNED_PREFIX.match(file_name):
        return "starts with a completion marker"
    return None


class BannedDocs(Validator):
    id = "banned-docs"

    def match(self, event: ToolUseEvent) -> bool:
        return event.extension == ".md"

    def run(self, event: ToolUseEvent) -> Violation | None:
        reason = banned_reason(event.file_name)
        if reason is None:
            return None
        return self.violation(
            f"{event.file_name} is a status/summary document ({reason}).",
            suggested_fix="Report progress in the conversation or update "
            "existing docs instead of creating a new status file.",
        )
