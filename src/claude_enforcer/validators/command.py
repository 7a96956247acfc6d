"""
External command validator.

Runs an independently-authored hook script with Claude Code's hook JSON on
stdin and reads the verdict from its exit code, the same convention the
assistant itself uses: 0 allows, 2 blocks (stderr is the reason), 3 warns.
Anything else is a fault, which the executor turns into a fail-open result.
"""

import json
import shlex
import subprocess
from typing import Any, Mapping

from claude_enforcer.errors import ValidatorFault
from claude_enforcer.models import EMPTY_OPTIONS, ToolUseEvent, Violation
from claude_enforcer.types import Verdict
from claude_enforcer.validators.base import Validator

BLOCK_EXIT_CODE = 2
WARN_EXIT_CODE = 3


def hook_payload(event: ToolUseEvent) -> dict[str, Any]:
    """Re-serialize the canonical event in the nested Claude Code shape."""
    return {
        "session_id": event.session_id,
        "hook_event_name": event.phase.value,
        "tool_name": event.tool_name,
        "tool_input": {"file_path": event.file_path, "content": event.content},
    }


class CommandValidator(Validator):
    id = "command"

    def __init__(
        self,
        hook_name: str,
        options: Mapping[str, Any] = EMPTY_OPTIONS,
        command: str | None = None,
        timeout_s: float | None = None,
    ) -> None:
        super().__init__(hook_name, options)
        if not command:
            raise ValueError(f"hook {hook_name}: command validator needs a command")
        self.argv = shlex.split(command)
        self.timeout_s = timeout_s

    def run(self, event: ToolUseEvent) -> Violation | None:
        try:
            completed = subprocess.run(
                self.argv,
                input=json.dumps(hook_payload(event)),
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as e:
            raise ValidatorFault(self.hook_name, f"command not found: {e.filename}") from e

        output = (completed.stderr or completed.stdout).strip()
        if completed.returncode == 0:
            return None
        if completed.returncode == BLOCK_EXIT_CODE:
            return Violation(
                hook_name=self.hook_name,
                severity=Verdict.BLOCK,
                message=output or f"{self.hook_name} blocked the operation",
                suggested_fix=self.options.get("remediation"),
            )
        if completed.returncode == WARN_EXIT_CODE:
            return Violation(
                hook_name=self.hook_name,
                severity=Verdict.WARN,
                message=output or f"{self.hook_name} raised a warning",
                suggested_fix=self.options.get("remediation"),
            )
        raise ValidatorFault(
            self.hook_name, f"exit code {completed.returncode}: {output[:200]}"
        )
