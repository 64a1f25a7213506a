"""
Environment classification — local, staging, or production.

The classification drives every default in the resolver and the
feature-gate evaluator.
"""

from __future__ import annotations

from enum import StrEnum

from stackplan.core.errors import ConfigError


class Classification(StrEnum):
    """Deployment environment classification."""

    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def is_local(self) -> bool:
        return self is Classification.LOCAL

    @property
    def is_production(self) -> bool:
        return self is Classification.PRODUCTION


_ALIASES: dict[str, Classification] = {
    "local": Classification.LOCAL,
    "dev": Classification.LOCAL,
    "development": Classification.LOCAL,
    "staging": Classification.STAGING,
    "stage": Classification.STAGING,
    "production": Classification.PRODUCTION,
    "prod": Classification.PRODUCTION,
}


def parse_classification(value: str | Classification) -> Classification:
    """Map a stack/environment name onto its classification.

    Raises:
        ConfigError: If the name is not a known alias.
    """
    if isinstance(value, Classification):
        return value
    key = (value or "").strip().lower()
    try:
        return _ALIASES[key]
    except KeyError:
        raise ConfigError(
            f"Unknown environment '{value}' "
            f"(expected one of: {', '.join(sorted(_ALIASES))})"
        ) from None
