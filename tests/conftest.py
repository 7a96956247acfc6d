"""Shared fixtures: an isolated engine home and builders for hooks and events."""

import logging

import pytest

from claude_enforcer.dispatcher import BYPASS_ENV_VAR
from claude_enforcer.models import HookDefinition, Matcher, ToolUseEvent
from claude_enforcer.paths import HOME_ENV_VAR, EnforcerPaths
from claude_enforcer.types import HookEvent, Priority


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    """No bypass switch, and package logging restored after CLI tests."""
    monkeypatch.delenv(BYPASS_ENV_VAR, raising=False)
    yield
    logger = logging.getLogger("claude_enforcer")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def enforcer_home(tmp_path, monkeypatch) -> EnforcerPaths:
    """An empty engine home, also exported through the environment."""
    home = tmp_path / "enforcer-home"
    monkeypatch.setenv(HOME_ENV_VAR, str(home))
    return EnforcerPaths(home)


@pytest.fixture
def make_hook():
    def _make(
        name: str,
        validator: str = "debug-print",
        family: str = "general",
        priority: Priority = Priority.NORMAL,
        phase: HookEvent = HookEvent.PRE_TOOL_USE,
        matcher: Matcher | None = None,
        timeout_ms: int = 1000,
        fixable: bool = False,
    ) -> HookDefinition:
        return HookDefinition(
            name=name,
            validator=validator,
            family=family,
            priority=priority,
            phase=phase,
            matcher=matcher or Matcher(),
            timeout_ms=timeout_ms,
            fixable=fixable,
        )

    return _make


@pytest.fixture
def make_event():
    def _make(
        file_path: str = "src/app.ts",
        content: str = "",
        phase: HookEvent = HookEvent.PRE_TOOL_USE,
        tool_name: str = "Write",
    ) -> ToolUseEvent:
        return ToolUseEvent(
            session_id="test-session",
            phase=phase,
            tool_name=tool_name,
            file_path=file_path,
            content=content,
        )

    return _make
