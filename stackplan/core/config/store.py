"""
ConfigStore — the flat override store the resolver reads from.

Keys are dotted ``section.key`` paths. Nested mappings are flattened,
Pulumi-style ``section:key`` keys are normalised to dots, and a few
section aliases (``postgres`` → ``postgresql``) are folded in so stack
files written with Pulumi key names keep working.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping

import yaml

from stackplan.core.errors import ConfigError

logger = logging.getLogger(__name__)

_SECTION_ALIASES = {
    "postgres": "postgresql",
    "laravel": "app",
}

# Leaf mappings that are values, not further nesting.
_MAPPING_LEAVES = frozenset({"ingress.annotations"})


def normalize_key(key: str) -> str:
    """Normalise ``section:key`` / ``section.key`` to the canonical dotted form."""
    parts = [p for p in key.replace(":", ".").split(".") if p]
    if not parts:
        raise ConfigError(f"Empty configuration key: {key!r}")
    parts[0] = _SECTION_ALIASES.get(parts[0], parts[0])
    return ".".join(parts)


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    for raw_key, value in data.items():
        key = normalize_key(f"{prefix}.{raw_key}" if prefix else str(raw_key))
        is_secret_handle = isinstance(value, Mapping) and set(value) == {"secret"}
        if isinstance(value, Mapping) and not is_secret_handle and key not in _MAPPING_LEAVES:
            yield from _flatten(value, key)
        else:
            yield key, value


class ConfigStore:
    """Immutable view over explicit configuration overrides."""

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = {}
        for key, value in _flatten(values or {}):
            self._values[key] = value

    @classmethod
    def from_pairs(cls, pairs: list[str] | tuple[str, ...]) -> ConfigStore:
        """Build a store from ``key=value`` strings (values parsed as YAML scalars)."""
        values: dict[str, Any] = {}
        for pair in pairs:
            if "=" not in pair:
                raise ConfigError(f"Expected key=value, got {pair!r}")
            key, raw = pair.split("=", 1)
            try:
                values[key.strip()] = yaml.safe_load(raw) if raw.strip() else ""
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid value for {key.strip()}: {e}") from e
        return cls(values)

    def layered(self, other: ConfigStore) -> ConfigStore:
        """Return a new store with ``other``'s keys taking precedence."""
        merged = ConfigStore()
        merged._values = {**self._values, **other._values}
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(normalize_key(key), default)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and normalize_key(key) in self._values

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return sorted(self._values)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)
