"""
Lookup — the single resolution primitive.

Every field resolves in the same order:

    1. explicit override   (first matching key in the store)
    2. classification default  (per-environment table)
    3. hard fallback       (environment-independent table)
    4. call-site default   (computed by the caller, e.g. engine port)

A null or empty override counts as absent. If all four miss, the field is
required and ``MissingConfigError`` is raised naming the first key.
Nothing is silently defaulted.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from stackplan.core.config.store import ConfigStore
from stackplan.core.errors import ConfigError, MissingConfigError
from stackplan.core.models.environment import Classification
from stackplan.core.models.secrets import DeferredSecret, LiteralSecret
from stackplan.core.services.secrets import GENERATE_HANDLE, validate_handle

logger = logging.getLogger(__name__)

_MISSING = object()

_TRUE = frozenset({"true", "yes", "on", "1"})
_FALSE = frozenset({"false", "no", "off", "0"})


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class Lookup:
    """Typed, precedence-ordered access to one override store."""

    def __init__(
        self,
        store: ConfigStore,
        classification: Classification,
        defaults: Mapping[str, Mapping[Classification, Any]] | None = None,
        fallbacks: Mapping[str, Any] | None = None,
    ):
        self.store = store
        self.classification = classification
        self._defaults = defaults or {}
        self._fallbacks = fallbacks or {}

    # ── Core ────────────────────────────────────────────────────

    def is_overridden(self, *keys: str) -> bool:
        """True when some key carries a non-blank override."""
        return any(not _blank(self.store.get(key)) for key in keys)

    def raw(self, *keys: str, default: Any = _MISSING, hint: str = "") -> Any:
        """Resolve ``keys`` without type coercion."""
        for key in keys:
            value = self.store.get(key)
            if not _blank(value):
                return value
        for key in keys:
            table = self._defaults.get(key)
            if table is not None and self.classification in table:
                return table[self.classification]
        for key in keys:
            if key in self._fallbacks:
                return self._fallbacks[key]
        if default is not _MISSING:
            return default
        raise MissingConfigError(keys[0], hint)

    def _field(self, keys: tuple[str, ...]) -> str:
        for key in keys:
            if not _blank(self.store.get(key)):
                return key
        return keys[0]

    # ── Typed accessors ─────────────────────────────────────────

    def string(self, *keys: str, default: Any = _MISSING, hint: str = "") -> str:
        value = self.raw(*keys, default=default, hint=hint)
        if _blank(value):
            raise MissingConfigError(keys[0], hint)
        if isinstance(value, (dict, list)):
            raise ConfigError(f"{self._field(keys)} must be a string")
        return str(value)

    def optional_string(self, *keys: str) -> str | None:
        value = self.raw(*keys, default=None)
        if value is None or value == "":
            return None
        if isinstance(value, (dict, list)):
            raise ConfigError(f"{self._field(keys)} must be a string")
        return str(value)

    def integer(self, *keys: str, default: Any = _MISSING) -> int:
        value = self.raw(*keys, default=default)
        if isinstance(value, bool):
            raise ConfigError(f"{self._field(keys)} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(
                f"{self._field(keys)} must be an integer, got {value!r}"
            ) from None

    def boolean(self, *keys: str, default: Any = _MISSING) -> bool:
        value = self.raw(*keys, default=default)
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        raise ConfigError(f"{self._field(keys)} must be a boolean, got {value!r}")

    def string_list(self, *keys: str) -> list[str]:
        value = self.raw(*keys, default=[])
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        if not isinstance(value, list):
            raise ConfigError(f"{self._field(keys)} must be a list")
        return [str(v) for v in value]

    def mapping(self, *keys: str) -> dict[str, str]:
        value = self.raw(*keys, default={})
        if not isinstance(value, Mapping):
            raise ConfigError(f"{self._field(keys)} must be a mapping")
        return {str(k): str(v) for k, v in value.items()}

    # ── Credentials ─────────────────────────────────────────────

    def secret(
        self,
        *keys: str,
        fallback: str | None = None,
        production_handle: str | None = GENERATE_HANDLE,
        optional: bool = False,
    ) -> LiteralSecret | DeferredSecret | None:
        """Resolve a credential without ever reading its plaintext.

        Overrides may be a plain string (literal) or ``{secret: handle}``
        (deferred). In production, plain strings are rejected and an
        absent credential becomes ``production_handle`` instead of the
        literal ``fallback``.
        """
        field = self._field(keys)
        value = self.raw(*keys, default=None) if self.is_overridden(*keys) else None

        if isinstance(value, Mapping):
            handle = value.get("secret")
            if not isinstance(handle, str) or not handle:
                raise ConfigError(f"{field}: secret handle must be a non-empty string")
            validate_handle(handle, field)
            return DeferredSecret(handle=handle)

        if value is not None and value != "":
            if self.classification.is_production:
                raise ConfigError(
                    f"{field}: plaintext credentials are not allowed in production; "
                    "use {secret: 'env:NAME'} or {secret: 'generate'}"
                )
            return LiteralSecret(value=str(value))

        if optional:
            return None
        if self.classification.is_production:
            if production_handle is None:
                raise MissingConfigError(field, "credential required in production")
            return DeferredSecret(handle=production_handle)
        if fallback is None:
            raise MissingConfigError(field)
        return LiteralSecret(value=fallback)
