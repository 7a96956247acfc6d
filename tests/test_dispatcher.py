"""Event dispatcher: normalization, the full pipeline and rendering."""

import json

import pytest

from claude_enforcer.dispatcher import (
    BYPASS_ENV_VAR,
    ENGINE_FAULT_MESSAGE,
    Engine,
    normalize,
    render,
)
from claude_enforcer.metrics import iter_records
from claude_enforcer.models import ALLOW, Decision
from claude_enforcer.types import HookEvent, Verdict


# ---------------------------------------------------------------------------
# normalize()
# ---------------------------------------------------------------------------


def test_nested_payload():
    event = normalize(
        {
            "session_id": "abc",
            "hook_event_name": "PostToolUse",
            "tool_name": "Write",
            "tool_input": {"file_path": "src/a.ts", "content": "let a;"},
        }
    )
    assert (event.session_id, event.phase, event.tool_name, event.file_path, event.content) == (
        "abc", HookEvent.POST_TOOL_USE, "Write", "src/a.ts", "let a;"
    )


def test_flat_payload_defaults_to_a_write_in_the_given_phase():
    event = normalize('{"filePath": "src/a.ts", "content": "x"}', HookEvent.POST_TOOL_USE)
    assert event.tool_name == "Write"
    assert event.phase is HookEvent.POST_TOOL_USE
    assert (event.file_path, event.content, event.session_id) == ("src/a.ts", "x", "")


def test_edit_and_multiedit_content():
    edit = normalize({"tool_name": "Edit", "tool_input": {"file_path": "a.ts", "old_string": "a", "new_string": "b"}})
    assert edit.content == "b"

    multi = normalize(
        {"tool_name": "MultiEdit", "tool_input": {"file_path": "a.ts", "edits": [{"new_string": "x"}, {"new_string": "y"}]}}
    )
    assert multi.content == "x\ny"


@pytest.mark.parametrize(
    "raw",
    [
        {"session_id": "s", "hook_event_name": "Stop"},
        {"session_id": "s", "hook_event_name": "PreToolUse", "tool_input": None},
        {"session_id": "s", "hook_event_name": "PreToolUse", "tool_input": "junk"},
        {"tool_input": {"file_path": 42, "content": ["not", "text"]}},
    ],
)
def test_missing_or_odd_fields_default_to_empty(raw):
    event = normalize(raw)
    assert event.file_path == ""
    assert event.content == ""


@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", "null", {"hook_event_name": "UserPromptSubmit"}])
def test_unnormalizable_input_raises_value_error(raw):
    with pytest.raises(ValueError):
        normalize(raw)


# ---------------------------------------------------------------------------
# render()
# ---------------------------------------------------------------------------


def test_render_block():
    rendered = render(Decision(Verdict.BLOCK, messages=("[file_hygiene] bad",)))
    assert rendered.exit_code == 2
    assert rendered.stderr == "Blocked by claude-enforcer:\n[file_hygiene] bad"
    assert json.loads(rendered.stdout)["verdict"] == "block"


def test_render_warn_and_allow_exit_zero():
    warned = render(Decision(Verdict.WARN, messages=("careful",)))
    assert warned.exit_code == 0
    assert "careful" in warned.stderr

    allowed = render(ALLOW)
    assert allowed.exit_code == 0
    assert allowed.stderr == ""
    assert json.loads(allowed.stdout) == {
        "verdict": "allow", "messages": [], "contributingHooks": [], "faults": [], "fixesApplied": []
    }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _payload(phase: str, file_path: str, content: str = "", tool: str = "Write") -> dict:
    return {
        "session_id": "session-1",
        "hook_event_name": phase,
        "tool_name": tool,
        "tool_input": {"file_path": file_path, "content": content},
    }


@pytest.fixture
def engine(enforcer_home) -> Engine:
    return Engine.from_paths(enforcer_home)


def test_improved_suffix_is_blocked_with_the_canonical_name(engine):
    decision = engine.dispatch(_payload("PreToolUse", "components/Profile_improved.tsx", "export {}"))

    assert decision.verdict is Verdict.BLOCK
    assert "no-improved-files" in decision.contributing_hooks
    assert any("Profile.tsx" in m for m in decision.messages)
    assert render(decision).exit_code == 2


def test_debug_print_warns_before_and_is_fixed_after_the_write(engine, tmp_path):
    target = tmp_path / "src" / "app.ts"
    target.parent.mkdir()
    content = "export const run = () => {\n  console.log('running');\n};\n"

    pre = engine.dispatch(_payload("PreToolUse", str(target), content))
    assert pre.verdict is Verdict.WARN
    assert pre.fixes == ()
    assert not target.exists()

    # The assistant performs the write, then the post-operation hook runs.
    target.write_text(content)
    post = engine.dispatch(_payload("PostToolUse", str(target), content))

    assert post.verdict is Verdict.WARN
    (fix,) = post.fixes
    assert fix.applied and fix.verified
    assert fix.backup_path is not None
    assert "logger.info('running')" in target.read_text()
    assert json.loads(render(post).stdout)["fixesApplied"][0]["backupPath"] == fix.backup_path


def test_every_execution_is_recorded(engine, enforcer_home):
    engine.dispatch(_payload("PreToolUse", "components/Profile_improved.tsx", "console.log(1)"))
    records = list(iter_records(enforcer_home.metrics_log))
    assert {r.hook_name for r in records} == {"no-improved-files", "debug-print"}
    assert {r.category for r in records} == {"file_hygiene", "code_cleanup"}


def test_same_event_same_decision(engine):
    payload = _payload("PreToolUse", "src/Widget_v2.tsx", "console.warn('x')")
    assert engine.dispatch(payload) == engine.dispatch(payload)


def test_event_without_matching_hooks_is_allowed(engine):
    assert engine.dispatch(_payload("PreToolUse", "notes.txt", "hello", tool="Read")) == ALLOW
    assert engine.dispatch({"session_id": "s", "hook_event_name": "Stop"}) == ALLOW


def test_malformed_input_is_allowed(engine):
    assert engine.dispatch("{broken") == ALLOW
    assert engine.dispatch([1, 2, 3]) == ALLOW


def test_deeply_nested_input_is_allowed(engine):
    assert engine.dispatch("[" * 100_000 + "]" * 100_000) == ALLOW


def test_bypass_switch_allows_everything(engine, monkeypatch):
    monkeypatch.setenv(BYPASS_ENV_VAR, "1")
    assert engine.dispatch(_payload("PreToolUse", "Profile_improved.tsx")) == ALLOW


def test_engine_failure_degrades_to_allow(engine, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("executor crashed")

    monkeypatch.setattr(engine.executor, "run", explode)
    decision = engine.dispatch(_payload("PreToolUse", "Profile_improved.tsx"))

    assert decision.verdict is Verdict.ALLOW
    assert decision.messages == (ENGINE_FAULT_MESSAGE,)


def _write_config(paths, text: str) -> None:
    paths.ensure_dirs()
    paths.config_file.write_text(text)


def test_disabled_families_are_not_enforced(enforcer_home):
    _write_config(enforcer_home, "enabledFamilies: [documentation]\n")
    engine = Engine.from_paths(enforcer_home)
    assert engine.dispatch(_payload("PreToolUse", "Profile_improved.tsx")).verdict is Verdict.ALLOW
    assert engine.dispatch(_payload("PreToolUse", "WORK_SUMMARY.md")).verdict is Verdict.WARN


def test_no_fix_after_a_blocked_post_operation(enforcer_home, tmp_path):
    _write_config(
        enforcer_home,
        "enforcementLevel:\n"
        "  code_cleanup: FULL\n"
        "hooks:\n"
        "  - name: strict-fix\n"
        "    validator: debug-print\n"
        "    family: code_cleanup\n"
        "    phase: PostToolUse\n"
        "    fixable: true\n",
    )
    target = tmp_path / "app.js"
    target.write_text("console.log(1);\n")

    decision = Engine.from_paths(enforcer_home).dispatch(_payload("PostToolUse", str(target)))

    assert decision.verdict is Verdict.BLOCK
    assert decision.fixes == ()
    assert target.read_text() == "console.log(1);\n"


@pytest.mark.parametrize("setting", ["autoFix: false\n", "dryRun: true\n"])
def test_auto_fix_off_or_dry_run_leaves_the_file(enforcer_home, tmp_path, setting):
    _write_config(enforcer_home, setting)
    target = tmp_path / "app.js"
    target.write_text("console.log(1);\n")

    decision = Engine.from_paths(enforcer_home).dispatch(_payload("PostToolUse", str(target)))

    assert decision.verdict is Verdict.WARN
    assert target.read_text() == "console.log(1);\n"
    assert not decision.fixes_applied


def test_fix_file_runs_matching_fixers(engine, tmp_path):
    target = tmp_path / "app.js"
    target.write_text("console.error('x');\n")

    (result,) = engine.fix_file(target, dry_run=True)
    assert not result.applied
    assert target.read_text() == "console.error('x');\n"

    (result,) = engine.fix_file(target)
    assert result.applied
    assert target.read_text() == "logger.error('x');\n"
