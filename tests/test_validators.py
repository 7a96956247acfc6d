"""Built-in validators and the command validator."""

import sys
import textwrap

import pytest

from claude_enforcer.errors import ValidatorFault
from claude_enforcer.models import HookDefinition, Matcher
from claude_enforcer.types import HookEvent, Priority, Verdict
from claude_enforcer.validators import (
    CATALOG,
    BannedDocs,
    CommandValidator,
    DebugPrint,
    ImprovedFileNames,
    build_validator,
)
from claude_enforcer.validators.banned_docs import banned_reason
from claude_enforcer.validators.debug_print import is_exempt, replace_console_calls
from claude_enforcer.validators.naming import canonical_name


# ---------------------------------------------------------------------------
# improved-file-names
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "name, canonical",
    [
        ("Profile_improved.tsx", "Profile.tsx"),
        ("api-v2.ts", "api.ts"),
        ("utils_FINAL.py", "utils.py"),
        ("Button_new.jsx", "Button.jsx"),
        ("Makefile_fixed", "Makefile"),
    ],
)
def test_canonical_name_strips_duplicate_suffix(name, canonical):
    assert canonical_name(name) == canonical


@pytest.mark.parametrize("name", ["Profile.tsx", "renewal.ts", "improved.ts", "v2.ts", "news.md"])
def test_canonical_name_leaves_ordinary_names_alone(name):
    assert canonical_name(name) is None


def test_improved_file_names_blocks_and_names_the_canonical_file(make_event):
    validator = ImprovedFileNames("no-improved-files")
    violation = validator.run(make_event(file_path="components/Profile_improved.tsx"))

    assert violation is not None
    assert violation.severity is Verdict.BLOCK
    assert violation.hook_name == "no-improved-files"
    assert "Profile.tsx" in violation.message
    assert "components/Profile.tsx" in violation.suggested_fix


def test_improved_file_names_ignores_events_without_a_path(make_event):
    assert not ImprovedFileNames("h").match(make_event(file_path=""))


# ---------------------------------------------------------------------------
# debug-print
# ---------------------------------------------------------------------------


def test_debug_print_flags_console_calls(make_event):
    content = "const x = 1;\nconsole.log('x', x);\nconsole.error(err);\n"
    violation = DebugPrint("debug-print").run(make_event(content=content))

    assert violation is not None
    assert "2 debug print call(s)" in violation.message
    assert "console.error, console.log" in violation.message


def test_debug_print_ignores_non_calls_and_clean_files(make_event):
    validator = DebugPrint("debug-print")
    assert validator.run(make_event(content="const logger = console;\nlogger.info('ok');\n")) is None


def test_debug_print_severity_comes_from_options(make_event):
    validator = DebugPrint("debug-print", {"severity": "warn"})
    assert validator.run(make_event(content="console.log(1)")).severity is Verdict.WARN


def test_debug_print_reads_file_on_disk_when_event_has_no_content(tmp_path, make_event):
    source = tmp_path / "app.ts"
    source.write_text("console.debug('x')\n")
    violation = DebugPrint("h").run(make_event(file_path=str(source), content=""))
    assert violation is not None


@pytest.mark.parametrize(
    "path, exempt",
    [
        ("src/app.ts", False),
        ("src/app.test.ts", True),
        ("src/Button.stories.tsx", True),
        ("scripts/build.js", True),
        ("src/__tests__/app.ts", True),
    ],
)
def test_debug_print_exemptions(path, exempt):
    assert is_exempt(path) is exempt


def test_debug_print_only_matches_script_files(make_event):
    validator = DebugPrint("h")
    assert validator.match(make_event(file_path="src/app.tsx"))
    assert not validator.match(make_event(file_path="README.md"))
    assert not validator.match(make_event(file_path="src/app.spec.ts"))


def test_replace_console_calls_maps_to_logger():
    text, count = replace_console_calls("console.log(a);\nconsole.warn(b);\nconsole.debug (c);\n")
    assert count == 3
    assert text == "logger.info(a);\nlogger.warn(b);\nlogger.debug (c);\n"


def test_debug_print_fix_returns_none_when_nothing_changes(make_event):
    assert DebugPrint("h").fix(make_event(), "logger.info(1)\n") is None
    assert DebugPrint.supports_fix()
    assert not ImprovedFileNames.supports_fix()


# ---------------------------------------------------------------------------
# banned-docs
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name", ["IMPLEMENTATION_SUMMARY.md", "test-report.md", "COMPLETE-auth.md", "DONE_migration.md"])
def test_banned_docs_flags_status_documents(name):
    assert banned_reason(name) is not None


@pytest.mark.parametrize("name", ["README.md", "CHANGELOG.md", "summary.txt", "docs/api.md"])
def test_banned_docs_allows_regular_documents(name):
    assert banned_reason(name) is None


def test_banned_docs_violation_has_remediation(make_event):
    violation = BannedDocs("banned-docs").run(make_event(file_path="PHASE1_COMPLETE.md"))
    assert violation is not None
    assert violation.suggested_fix


# ---------------------------------------------------------------------------
# command validator
# ---------------------------------------------------------------------------


def _script(tmp_path, body: str) -> str:
    script = tmp_path / "hook.py"
    script.write_text(textwrap.dedent(body))
    return f"{sys.executable} {script}"


def test_command_validator_exit_2_blocks_with_stderr(tmp_path, make_event):
    command = _script(
        tmp_path,
        """
        import json, sys
        payload = json.load(sys.stdin)
        sys.stderr.write("no writes to " + payload["tool_input"]["file_path"])
        sys.exit(2)
        """,
    )
    violation = CommandValidator("ext", command=command, timeout_s=10).run(make_event(file_path="x.ts"))
    assert violation.severity is Verdict.BLOCK
    assert violation.message == "no writes to x.ts"


def test_command_validator_exit_0_allows(tmp_path, make_event):
    command = _script(tmp_path, "import sys\nsys.exit(0)\n")
    assert CommandValidator("ext", command=command, timeout_s=10).run(make_event()) is None


def test_command_validator_exit_3_warns(tmp_path, make_event):
    command = _script(tmp_path, "import sys\nsys.stderr.write('careful')\nsys.exit(3)\n")
    violation = CommandValidator("ext", command=command, timeout_s=10).run(make_event())
    assert violation.severity is Verdict.WARN


def test_command_validator_other_exit_codes_are_faults(tmp_path, make_event):
    command = _script(tmp_path, "import sys\nsys.exit(1)\n")
    with pytest.raises(ValidatorFault):
        CommandValidator("ext", command=command, timeout_s=10).run(make_event())


def test_command_validator_missing_binary_is_a_fault(make_event):
    validator = CommandValidator("ext", command="/nonexistent/hook-binary", timeout_s=1)
    with pytest.raises(ValidatorFault):
        validator.run(make_event())


def test_command_validator_requires_a_command():
    with pytest.raises(ValueError):
        CommandValidator("ext")


# ---------------------------------------------------------------------------
# catalog
# ---------------------------------------------------------------------------


def test_catalog_is_keyed_by_validator_id():
    assert set(CATALOG) == {"improved-file-names", "debug-print", "banned-docs", "command"}


def test_build_validator_passes_command_and_timeout():
    hook = HookDefinition(
        name="ext",
        validator="command",
        family="external",
        priority=Priority.HIGH,
        phase=HookEvent.PRE_TOOL_USE,
        matcher=Matcher(),
        timeout_ms=1500,
        command="echo hi",
    )
    validator = build_validator(hook)
    assert isinstance(validator, CommandValidator)
    assert validator.argv == ["echo", "hi"]
    assert validator.timeout_s == 1.5
