"""CLI tests -- every command through typer's CliRunner against an isolated home."""

import json

import pytest
from typer.testing import CliRunner

from claude_enforcer.cli import app
from claude_enforcer.dispatcher import BYPASS_ENV_VAR
from claude_enforcer.settings import HOOK_COMMAND


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def runner():
    return CliRunner()


def _payload(phase: str, file_path: str, content: str = "") -> str:
    return json.dumps(
        {
            "session_id": "cli-test",
            "hook_event_name": phase,
            "tool_name": "Write",
            "tool_input": {"file_path": file_path, "content": content},
        }
    )


def _decision(result) -> dict:
    """The JSON decision is always the first line written to stdout."""
    return json.loads(result.stdout.splitlines()[0])


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


def test_check_blocks_with_exit_code_2(runner, enforcer_home):
    result = runner.invoke(app, ["check", "--input", _payload("PreToolUse", "src/Profile_improved.tsx")])

    assert result.exit_code == 2
    decision = _decision(result)
    assert decision["verdict"] == "block"
    assert "no-improved-files" in decision["contributingHooks"]


def test_check_reads_stdin_and_allows(runner, enforcer_home):
    result = runner.invoke(app, ["check"], input=_payload("PreToolUse", "src/Profile.tsx", "export {}"))

    assert result.exit_code == 0
    assert _decision(result)["verdict"] == "allow"


def test_check_flat_payload_uses_phase_option(runner, enforcer_home, tmp_path):
    target = tmp_path / "app.js"
    target.write_text("console.log(1);\n")
    flat = json.dumps({"file_path": str(target), "content": "console.log(1);\n"})

    result = runner.invoke(app, ["check", "--phase", "post", "--input", flat])

    assert result.exit_code == 0
    assert _decision(result)["fixesApplied"][0]["applied"] is True
    assert target.read_text() == "logger.info(1);\n"


def test_check_writes_metrics(runner, enforcer_home):
    runner.invoke(app, ["check", "--input", _payload("PreToolUse", "Widget_v2.ts")])
    assert enforcer_home.metrics_log.exists()


def test_malformed_input_is_allowed(runner, enforcer_home):
    result = runner.invoke(app, ["check", "--input", "{not json"])
    assert result.exit_code == 0
    assert _decision(result)["verdict"] == "allow"


def test_bypass_switch(runner, enforcer_home):
    result = runner.invoke(
        app,
        ["check", "--input", _payload("PreToolUse", "Profile_improved.tsx")],
        env={BYPASS_ENV_VAR: "true"},
    )
    assert result.exit_code == 0


def test_invalid_configuration_fails_closed(runner, enforcer_home):
    enforcer_home.ensure_dirs()
    enforcer_home.config_file.write_text("enforcementLevel:\n  file_hygiene: STRICT\n")

    result = runner.invoke(app, ["check", "--input", _payload("PreToolUse", "Profile.tsx")])

    assert result.exit_code == 2


@pytest.mark.parametrize(
    "file_name, content",
    [
        ("config.yaml", b"autoFix: \xff\n"),
        ("config.yaml", b"hooks:\n  - name: ext\n    validator: command\n    family: custom\n    phase: PreToolUse\n    command: [echo, hi]\n"),
        ("enforcement.json", b"[]"),
        ("enforcement.json", b"null"),
    ],
)
def test_unusable_state_files_fail_closed(runner, enforcer_home, file_name, content):
    enforcer_home.ensure_dirs()
    (enforcer_home.home / file_name).write_bytes(content)

    result = runner.invoke(app, ["check", "--input", _payload("PreToolUse", "Profile.tsx")])

    assert result.exit_code == 2


def test_unknown_phase_option_is_rejected(runner, enforcer_home):
    result = runner.invoke(app, ["check", "--phase", "Sometimes", "--input", "{}"])
    assert result.exit_code == 2


def test_stop_event_runs_graduation(runner, enforcer_home):
    result = runner.invoke(app, ["check", "--input", json.dumps({"session_id": "s", "hook_event_name": "Stop"})])
    assert result.exit_code == 0
    assert _decision(result)["verdict"] == "allow"


# ---------------------------------------------------------------------------
# fix / rollback
# ---------------------------------------------------------------------------


def test_fix_then_rollback(runner, enforcer_home, tmp_path):
    target = tmp_path / "app.ts"
    original = "console.warn('careful');\n"
    target.write_text(original)

    result = runner.invoke(app, ["fix", str(target)])
    assert result.exit_code == 0
    assert target.read_text() == "logger.warn('careful');\n"

    (backup,) = enforcer_home.backup_dir.iterdir()
    result = runner.invoke(app, ["rollback", str(backup), str(target)])
    assert result.exit_code == 0
    assert target.read_text() == original


def test_fix_dry_run_prints_diff(runner, enforcer_home, tmp_path):
    target = tmp_path / "app.ts"
    target.write_text("console.log('x');\n")

    result = runner.invoke(app, ["fix", "--dry-run", str(target)])

    assert result.exit_code == 0
    assert "+logger.info('x');" in result.stdout
    assert target.read_text() == "console.log('x');\n"
    assert not enforcer_home.backup_dir.exists() or not any(enforcer_home.backup_dir.iterdir())


def test_fix_without_applicable_hooks(runner, enforcer_home, tmp_path):
    target = tmp_path / "notes.txt"
    target.write_text("console.log('x')\n")

    result = runner.invoke(app, ["fix", str(target)])

    assert result.exit_code == 0
    assert "No fixable hooks" in result.stdout


# ---------------------------------------------------------------------------
# enforcement
# ---------------------------------------------------------------------------


def test_set_level_and_history(runner, enforcer_home):
    result = runner.invoke(app, ["enforcement", "set-level", "code_cleanup", "full", "--reason", "trusted"])
    assert result.exit_code == 0
    assert "WARNING → FULL" in result.stdout

    snapshot = json.loads(enforcer_home.snapshot_file.read_text())
    assert snapshot["levels"]["code_cleanup"] == "FULL"

    result = runner.invoke(app, ["enforcement", "history", "--category", "code_cleanup"])
    assert result.exit_code == 0
    assert "Enforcement History" in result.stdout


def test_set_level_rejects_unknown_level(runner, enforcer_home):
    result = runner.invoke(app, ["enforcement", "set-level", "code_cleanup", "LOUD"])
    assert result.exit_code == 1


def test_graduate_without_metrics_changes_nothing(runner, enforcer_home):
    result = runner.invoke(app, ["enforcement", "graduate", "--dry-run"])
    assert result.exit_code == 0
    assert "No level changes" in result.stdout


def test_empty_history(runner, enforcer_home):
    result = runner.invoke(app, ["enforcement", "history"])
    assert result.exit_code == 0
    assert "No enforcement transitions" in result.stdout


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------


def test_metrics_show_and_prune(runner, enforcer_home):
    result = runner.invoke(app, ["metrics", "show"])
    assert result.exit_code == 0
    assert "No metrics recorded" in result.stdout

    runner.invoke(app, ["check", "--input", _payload("PreToolUse", "Widget_v2.ts")])

    result = runner.invoke(app, ["metrics", "show", "--days", "1"])
    assert result.exit_code == 0
    assert "Hook Metrics" in result.stdout

    result = runner.invoke(app, ["metrics", "prune"])
    assert result.exit_code == 0
    assert "Nothing older than 30 days" in result.stdout


# ---------------------------------------------------------------------------
# install / uninstall / status
# ---------------------------------------------------------------------------


def test_install_status_uninstall_for_a_project(runner, enforcer_home, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    settings_path = tmp_path / ".claude" / "settings.local.json"

    result = runner.invoke(app, ["install", "--project"])
    assert result.exit_code == 0
    assert enforcer_home.config_file.exists()

    hooks = json.loads(settings_path.read_text())["hooks"]
    assert set(hooks) == {"PreToolUse", "PostToolUse", "Stop"}
    assert hooks["PreToolUse"][0]["hooks"] == [{"type": "command", "command": HOOK_COMMAND}]
    assert "matcher" not in hooks["Stop"][0]

    result = runner.invoke(app, ["install", "--project"])
    assert "Already registered" in result.stdout
    assert len(json.loads(settings_path.read_text())["hooks"]["PreToolUse"][0]["hooks"]) == 1

    result = runner.invoke(app, ["status", "--project"])
    assert result.exit_code == 0
    assert "Claude Code Registration" in result.stdout

    result = runner.invoke(app, ["uninstall", "--project"])
    assert result.exit_code == 0
    assert json.loads(settings_path.read_text())["hooks"] == {"PreToolUse": [], "PostToolUse": [], "Stop": []}


def test_install_keeps_an_existing_configuration(runner, enforcer_home, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    enforcer_home.ensure_dirs()
    enforcer_home.config_file.write_text("autoFix: false\n")

    result = runner.invoke(app, ["install", "--project"])

    assert result.exit_code == 0
    assert enforcer_home.config_file.read_text() == "autoFix: false\n"
