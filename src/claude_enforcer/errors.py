"""
Exception types for claude-enforcer.

Each error is caught at its own unit boundary. ConfigError is the only one
that stops the engine; the rest degrade to allow.
"""


class EnforcerError(Exception):
    """Base class for every engine error."""


class ConfigError(EnforcerError):
    """Configuration could not be parsed or is structurally invalid."""

    def __init__(self, reason: str, source: str | None = None) -> None:
        self.reason = reason
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"Invalid configuration{where}: {reason}")


class ValidatorFault(EnforcerError):
    """A validator returned output the engine cannot interpret."""

    def __init__(self, hook_name: str, reason: str) -> None:
        self.hook_name = hook_name
        self.reason = reason
        super().__init__(f"Validator {hook_name} misbehaved: {reason}")


class FixApplyError(EnforcerError):
    """A transformed file failed structural verification."""


class TransitionError(EnforcerError):
    """An enforcement level change that the state machine forbids."""


class MetricsError(EnforcerError):
    """The metrics log could not be written or read."""


class LockTimeout(EnforcerError):
    """A file lock could not be acquired in time."""

    def __init__(self, path: str, waited_s: float) -> None:
        self.path = path
        self.waited_s = waited_s
        super().__init__(f"Could not lock {path} within {waited_s:.1f}s")
