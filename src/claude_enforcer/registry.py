"""
Hook Registry: the typed set of configured hooks, built once at startup.
"""

import logging
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from claude_enforcer.config import EngineConfig
from claude_enforcer.enforcement import EnforcementSnapshot
from claude_enforcer.errors import ConfigError
from claude_enforcer.models import HookDefinition, ToolUseEvent
from claude_enforcer.types import EnforcementLevel
from claude_enforcer.validators import Validator, build_validator

logger = logging.getLogger(__name__)


def display_order(hook: HookDefinition) -> tuple[int, str, str]:
    return (hook.priority.rank, hook.family, hook.name)


class HookRegistry:
    """Hook definitions plus one validator instance per hook."""

    def __init__(
        self,
        hooks: Iterable[HookDefinition],
        enabled_families: frozenset[str] = frozenset(),
    ) -> None:
        self._hooks = tuple(hooks)
        self._enabled_families = enabled_families
        validators: dict[str, Validator] = {}
        for hook in self._hooks:
            if hook.name in validators:
                raise ConfigError(f"duplicate hook name {hook.name!r}")
            try:
                validators[hook.name] = build_validator(hook)
            except (KeyError, ValueError) as e:
                raise ConfigError(f"hook {hook.name!r}: {e}") from e
        self._validators = MappingProxyType(validators)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "HookRegistry":
        return cls(config.hooks, config.enabled_families)

    @property
    def validators(self) -> Mapping[str, Validator]:
        return self._validators

    @property
    def hooks(self) -> tuple[HookDefinition, ...]:
        return self._hooks

    def __iter__(self) -> Iterator[HookDefinition]:
        return iter(self._hooks)

    def __len__(self) -> int:
        return len(self._hooks)

    def families(self) -> set[str]:
        return {h.family for h in self._hooks}

    def family_enabled(self, family: str) -> bool:
        return not self._enabled_families or family in self._enabled_families

    def select(
        self, event: ToolUseEvent, snapshot: EnforcementSnapshot
    ) -> list[HookDefinition]:
        """Hooks eligible for this event, in display order."""
        selected = []
        for hook in self._hooks:
            if hook.phase is not event.phase:
                continue
            if not self.family_enabled(hook.family):
                continue
            if not hook.matcher.accepts(event):
                continue
            if snapshot.level_for(hook.category) is EnforcementLevel.SILENT:
                logger.debug("Skipping %s: category %s is SILENT", hook.name, hook.category)
                continue
            selected.append(hook)
        return sorted(selected, key=display_order)

    def fixable(self, hooks: Iterable[HookDefinition]) -> list[HookDefinition]:
        return [h for h in hooks if h.fixable and self._validators[h.name].supports_fix()]
