"""
Engine configuration: YAML file merged over built-in defaults.

Loading is the one place the engine fails closed. Anything structurally wrong
raises ConfigError and the CLI refuses to evaluate events, because running
with a half-understood configuration would silently enforce nothing.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from claude_enforcer.errors import ConfigError
from claude_enforcer.models import HookDefinition, Matcher
from claude_enforcer.types import EnforcementLevel, HookEvent, Priority
from claude_enforcer.validators import CATALOG

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = """\
# claude-enforcer configuration
# Levels: SILENT (hooks skipped), WARNING (blocks become warnings),
# PARTIAL (only critical hooks block), FULL (everything blocks)

enforcementLevel:
  file_hygiene: FULL
  documentation: PARTIAL
  code_cleanup: WARNING

hookTimeoutMs: 2000
globalDeadlineMs: 5000
# invocation: one deadline per engine call; phase: per-phase deadlines below
deadlineScope: invocation
phaseDeadlineMs: {}
maxConcurrency: 8
enabledFamilies: []
autoFix: true
dryRun: false

graduation:
  windowDays: 1
  requiredWindows: 3
  violationThreshold: 0.1
  errorSpikeThreshold: 0.25
  minSamples: 5

metrics:
  queueSize: 256
  retentionDays: 30

messages:
  maxMessages: 10
  maxMessageLength: 500
  maxTotalLength: 4000

hooks:
  - name: no-improved-files
    validator: improved-file-names
    family: file_hygiene
    priority: critical
    phase: PreToolUse
    matcher: "Write|Edit|MultiEdit"
    timeoutMs: 1000

  - name: banned-docs
    validator: banned-docs
    family: documentation
    priority: high
    phase: PreToolUse
    matcher:
      tools: "Write"
      paths: ["*.md"]
    timeoutMs: 1000

  - name: debug-print
    validator: debug-print
    family: code_cleanup
    priority: normal
    phase: PreToolUse
    matcher:
      tools: "Write|Edit|MultiEdit"
      paths: ["*.js", "*.jsx", "*.ts", "*.tsx", "*.mjs", "*.cjs"]
    timeoutMs: 1500

  - name: debug-print-fix
    validator: debug-print
    family: code_cleanup
    priority: low
    phase: PostToolUse
    matcher:
      tools: "Write|Edit|MultiEdit"
      paths: ["*.js", "*.jsx", "*.ts", "*.tsx", "*.mjs", "*.cjs"]
    timeoutMs: 3000
    fixable: true
    options:
      severity: warn
"""

DEADLINE_SCOPES = frozenset({"invocation", "phase"})

HOOK_KEYS = frozenset(
    {"name", "validator", "family", "priority", "phase", "matcher", "timeoutMs",
     "fixable", "options", "command"}
)
TOP_LEVEL_KEYS = frozenset(
    {"enforcementLevel", "hookTimeoutMs", "globalDeadlineMs", "deadlineScope",
     "phaseDeadlineMs", "maxConcurrency", "enabledFamilies", "autoFix", "dryRun",
     "graduation", "metrics", "messages", "hooks"}
)
MERGED_SECTIONS = ("enforcementLevel", "phaseDeadlineMs", "graduation", "metrics", "messages")


@dataclass(frozen=True)
class GraduationConfig:
    window_days: int = 1
    required_windows: int = 3
    violation_threshold: float = 0.1
    error_spike_threshold: float = 0.25
    min_samples: int = 5


@dataclass(frozen=True)
class MetricsConfig:
    queue_size: int = 256
    retention_days: int = 30


@dataclass(frozen=True)
class MessageConfig:
    max_messages: int = 10
    max_message_length: int = 500
    max_total_length: int = 4000


@dataclass(frozen=True)
class EngineConfig:
    """Fully validated configuration for one invocation."""

    hooks: tuple[HookDefinition, ...]
    enforcement_level: Mapping[str, EnforcementLevel] = field(
        default_factory=lambda: MappingProxyType({})
    )
    hook_timeout_ms: int = 2000
    global_deadline_ms: int = 5000
    deadline_scope: str = "invocation"
    phase_deadline_ms: Mapping[HookEvent, int] = field(
        default_factory=lambda: MappingProxyType({})
    )
    max_concurrency: int = 8
    enabled_families: frozenset[str] = frozenset()
    auto_fix: bool = True
    dry_run: bool = False
    graduation: GraduationConfig = GraduationConfig()
    metrics: MetricsConfig = MetricsConfig()
    messages: MessageConfig = MessageConfig()

    def deadline_for(self, phase: HookEvent) -> int:
        """Global deadline in ms for an event of the given phase."""
        if self.deadline_scope == "phase":
            return self.phase_deadline_ms.get(phase, self.global_deadline_ms)
        return self.global_deadline_ms


# =============================================================================
# PARSING HELPERS
# =============================================================================


def _expect_mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _positive_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{where} must be a positive integer, got {value!r}")
    return value


def _fraction(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ConfigError(f"{where} must be a number between 0 and 1, got {value!r}")
    return float(value)


def _boolean(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{where} must be true or false, got {value!r}")
    return value


def _enum(enum_cls: Any, value: Any, where: str) -> Any:
    try:
        if enum_cls is HookEvent:
            return HookEvent.parse(str(value))
        if enum_cls is EnforcementLevel:
            return EnforcementLevel(str(value).upper())
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{where}: {value!r} is not one of {choices}") from None


def parse_matcher(raw: Any, where: str) -> Matcher:
    if raw is None:
        return Matcher()
    if isinstance(raw, str):
        return Matcher(tools=_regex(raw, where))
    data = _expect_mapping(raw, where)
    unknown = set(data) - {"tools", "paths"}
    if unknown:
        raise ConfigError(f"{where}: unknown keys {sorted(unknown)}")
    paths = data.get("paths") or []
    if isinstance(paths, str):
        paths = [paths]
    if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
        raise ConfigError(f"{where}.paths must be a list of glob strings")
    return Matcher(tools=_regex(data.get("tools") or ".*", f"{where}.tools"), paths=tuple(paths))


def _regex(value: Any, where: str) -> str:
    try:
        re.compile(str(value))
    except re.error as e:
        raise ConfigError(f"{where}: invalid regex {value!r} ({e})") from None
    return str(value)


def parse_hook(raw: Any, index: int, default_timeout_ms: int) -> HookDefinition:
    where = f"hooks[{index}]"
    data = _expect_mapping(raw, where)
    unknown = set(data) - HOOK_KEYS
    if unknown:
        raise ConfigError(f"{where}: unknown keys {sorted(unknown)}")
    for key in ("name", "validator", "family", "phase"):
        if not data.get(key):
            raise ConfigError(f"{where}: missing required key '{key}'")

    name = str(data["name"])
    where = f"hook '{name}'"
    validator_id = str(data["validator"])
    if validator_id not in CATALOG:
        raise ConfigError(
            f"{where}: unknown validator {validator_id!r} (known: {', '.join(sorted(CATALOG))})"
        )
    validator_cls = CATALOG[validator_id]
    if validator_id == "command" and not data.get("command"):
        raise ConfigError(f"{where}: command validators need a 'command'")
    command = data.get("command")
    if command is not None and not isinstance(command, str):
        raise ConfigError(f"{where}.command must be a string, got {type(command).__name__}")

    fixable = _boolean(data.get("fixable", False), f"{where}.fixable")
    if fixable and not validator_cls.supports_fix():
        raise ConfigError(f"{where}: validator {validator_id!r} cannot fix files")

    options = _expect_mapping(data.get("options"), f"{where}.options")
    return HookDefinition(
        name=name,
        validator=validator_id,
        family=str(data["family"]),
        priority=_enum(Priority, data.get("priority", "normal"), f"{where}.priority"),
        phase=_enum(HookEvent, data["phase"], f"{where}.phase"),
        matcher=parse_matcher(data.get("matcher"), f"{where}.matcher"),
        timeout_ms=_positive_int(data.get("timeoutMs", default_timeout_ms), f"{where}.timeoutMs"),
        fixable=fixable,
        options=MappingProxyType(dict(options)),
        command=command,
    )


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Top-level keys replace; the named sections merge one level deep."""
    merged = dict(base)
    for key, value in override.items():
        if key in MERGED_SECTIONS and isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = {**base[key], **value}
        else:
            merged[key] = value
    return merged


# =============================================================================
# BUILD / LOAD
# =============================================================================


def build_config(data: dict[str, Any]) -> EngineConfig:
    """Validate a merged configuration mapping into an EngineConfig."""
    unknown = set(data) - TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"unknown top-level keys {sorted(unknown)}")

    hook_timeout_ms = _positive_int(data.get("hookTimeoutMs", 2000), "hookTimeoutMs")

    raw_hooks = data.get("hooks") or []
    if not isinstance(raw_hooks, list):
        raise ConfigError("hooks must be a list")
    hooks = tuple(parse_hook(raw, i, hook_timeout_ms) for i, raw in enumerate(raw_hooks))
    names = [h.name for h in hooks]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"duplicate hook names: {', '.join(duplicates)}")

    levels = {
        str(category): _enum(EnforcementLevel, level, f"enforcementLevel.{category}")
        for category, level in _expect_mapping(data.get("enforcementLevel"), "enforcementLevel").items()
    }

    scope = data.get("deadlineScope", "invocation")
    if scope not in DEADLINE_SCOPES:
        raise ConfigError(f"deadlineScope must be one of {sorted(DEADLINE_SCOPES)}, got {scope!r}")
    phase_deadlines = {
        _enum(HookEvent, phase, "phaseDeadlineMs"): _positive_int(ms, f"phaseDeadlineMs.{phase}")
        for phase, ms in _expect_mapping(data.get("phaseDeadlineMs"), "phaseDeadlineMs").items()
    }

    families = data.get("enabledFamilies") or []
    if not isinstance(families, list):
        raise ConfigError("enabledFamilies must be a list")

    grad = _expect_mapping(data.get("graduation"), "graduation")
    metrics = _expect_mapping(data.get("metrics"), "metrics")
    messages = _expect_mapping(data.get("messages"), "messages")

    return EngineConfig(
        hooks=hooks,
        enforcement_level=MappingProxyType(levels),
        hook_timeout_ms=hook_timeout_ms,
        global_deadline_ms=_positive_int(data.get("globalDeadlineMs", 5000), "globalDeadlineMs"),
        deadline_scope=scope,
        phase_deadline_ms=MappingProxyType(phase_deadlines),
        max_concurrency=_positive_int(data.get("maxConcurrency", 8), "maxConcurrency"),
        enabled_families=frozenset(str(f) for f in families),
        auto_fix=_boolean(data.get("autoFix", True), "autoFix"),
        dry_run=_boolean(data.get("dryRun", False), "dryRun"),
        graduation=GraduationConfig(
            window_days=_positive_int(grad.get("windowDays", 1), "graduation.windowDays"),
            required_windows=_positive_int(grad.get("requiredWindows", 3), "graduation.requiredWindows"),
            violation_threshold=_fraction(grad.get("violationThreshold", 0.1), "graduation.violationThreshold"),
            error_spike_threshold=_fraction(grad.get("errorSpikeThreshold", 0.25), "graduation.errorSpikeThreshold"),
            min_samples=_positive_int(grad.get("minSamples", 5), "graduation.minSamples"),
        ),
        metrics=MetricsConfig(
            queue_size=_positive_int(metrics.get("queueSize", 256), "metrics.queueSize"),
            retention_days=_positive_int(metrics.get("retentionDays", 30), "metrics.retentionDays"),
        ),
        messages=MessageConfig(
            max_messages=_positive_int(messages.get("maxMessages", 10), "messages.maxMessages"),
            max_message_length=_positive_int(messages.get("maxMessageLength", 500), "messages.maxMessageLength"),
            max_total_length=_positive_int(messages.get("maxTotalLength", 4000), "messages.maxTotalLength"),
        ),
    )


def parse_yaml(text: str, source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML syntax error: {e}", source) from e
    return _expect_mapping(data, source)


def load_config(path: Path | None = None) -> EngineConfig:
    """Load configuration from path (defaults only when the file is absent)."""
    data = parse_yaml(DEFAULT_CONFIG, "<defaults>")
    if path is not None and path.exists():
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"cannot read file: {e}", str(path)) from e
        data = merge_config(data, parse_yaml(text, str(path)))
        logger.debug("Loaded configuration from %s", path)
    try:
        return build_config(data)
    except ConfigError as e:
        if e.source is None and path is not None:
            raise ConfigError(e.reason, str(path)) from e
        raise
