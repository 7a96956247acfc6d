"""
Debug-print rule for JavaScript/TypeScript sources.

Flags console.* calls and, as a post-operation fix, rewrites them to the
project logger.
"""

import re
from pathlib import PurePath

from claude_enforcer.models import ToolUseEvent, Violation
from claude_enforcer.validators.base import Validator, event_text

SCRIPT_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"})

CONSOLE_REPLACEMENTS = {
    "console.log": "logger.info",
    "console.error": "logger.error",
    "console.warn": "logger.warn",
    "console.info": "logger.info",
    "console.debug": "logger.debug",
}

CONSOLE_CALL = re.compile(r"\bconsole\.(log|error|warn|info|debug)\b(?=\s*\()")

# Places where printing to the console is the point.
EXEMPT_DIRS = frozenset({"hooks", "scripts", "tools", "bin", "__tests__", "tests"})
EXEMPT_NAME = re.compile(r"\.(test|spec|stories)\.[cm]?[jt]sx?$", re.IGNORECASE)


def is_exempt(file_path: str) -> bool:
    path = PurePath(file_path)
    if EXEMPT_NAME.search(path.name):
        return True
    return any(part in EXEMPT_DIRS for part in path.parts[:-1])


def replace_console_calls(text: str) -> tuple[str, int]:
    """Rewrite console.* calls; returns the new text and the number of rewrites."""

    def _swap(match: re.Match) -> str:
        return CONSOLE_REPLACEMENTS[match.group(0)]

    return CONSOLE_CALL.subn(_swap, text)


class DebugPrint(Validator):
    id = "debug-print"

    def match(self, event: ToolUseEvent) -> bool:
        return event.extension in SCRIPT_EXTENSIONS and not is_exempt(event.file_path)

    def run(self, event: ToolUseEvent) -> Violation | None:
        calls = CONSOLE_CALL.findall(event_text(event))
        if not calls:
            return None
        kinds = ", ".join(sorted({f"console.{c}" for c in calls}))
        return self.violation(
            f"{event.file_name} contains {len(calls)} debug print call(s): {kinds}.",
            suggested_fix="Use the project logger (logger.info/logger.error) "
            "instead of console.*.",
        )

    def fix(self, event: ToolUseEvent, text: str) -> str | None:
        fixed, count = replace_console_calls(text)
        return fixed if count else None
