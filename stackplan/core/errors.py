"""
Error taxonomy for configuration resolution and topology composition.

Every error surfaces synchronously to the caller of ``compose()``.
Nothing here is logged-and-ignored: a partially described topology
is never a valid result.
"""

from __future__ import annotations


class StackplanError(Exception):
    """Base class for every error raised by stackplan."""


class ConfigError(StackplanError):
    """Raised when configuration is invalid, unreadable, or inconsistent."""


class MissingConfigError(ConfigError):
    """A required field has no override, classification default, or fallback."""

    def __init__(self, field: str, hint: str = ""):
        self.field = field
        message = f"Missing required configuration: {field}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)


class InvalidEngineError(ConfigError):
    """An engine identifier falls outside its capability's enumeration."""

    def __init__(self, capability: str, value: str, choices: tuple[str, ...]):
        self.capability = capability
        self.value = value
        self.choices = choices
        super().__init__(
            f"Invalid {capability} engine '{value}' "
            f"(expected one of: {', '.join(choices)})"
        )


class BuilderInvariantError(StackplanError):
    """A builder was invoked for an engine it does not serve.

    This is a programming defect, not a user error.
    """


class SecretResolutionError(StackplanError):
    """A deferred secret handle could not be resolved at consumption time."""
