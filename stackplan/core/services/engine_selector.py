"""
Engine selector — exactly one engine per capability.

Selection uses the same precedence as every other field: explicit
``<capability>.engine`` override, then the classification default, then
the hard fallback. The result is a pure function of its inputs.
"""

from __future__ import annotations

import logging

from stackplan.core.config.lookup import Lookup
from stackplan.core.config.store import ConfigStore
from stackplan.core.errors import InvalidEngineError
from stackplan.core.models.engines import (
    ENGINE_ALIASES,
    ENGINE_CHOICES,
    EXTERNAL_ENGINES,
    Capability,
)
from stackplan.core.models.config import EngineSelection
from stackplan.core.models.environment import Classification

logger = logging.getLogger(__name__)

_L, _S, _P = Classification.LOCAL, Classification.STAGING, Classification.PRODUCTION

ENGINE_DEFAULTS: dict[str, dict[Classification, str]] = {
    # Object storage runs in-cluster only for local development.
    "storage.engine": {_L: "minio", _S: "s3", _P: "s3"},
}

ENGINE_FALLBACKS: dict[str, str] = {
    "database.engine": "postgresql",
    "cache.engine": "redis",
    "queue.engine": "rabbitmq",
    "search.engine": "meilisearch",
}


def validate_engine(capability: Capability | str, value: str) -> str:
    """Normalise and check one engine identifier.

    Raises:
        InvalidEngineError: If ``value`` is outside the capability's enumeration.
    """
    capability = Capability(capability)
    engine = str(value).strip().lower()
    if engine == "postgres":
        engine = "postgresql"
    choices = ENGINE_CHOICES[capability]
    if engine not in choices:
        raise InvalidEngineError(capability.value, str(value), choices)
    return engine


def select_engines(
    classification: Classification,
    overrides: ConfigStore | None = None,
) -> EngineSelection:
    """Select the engine for every capability."""
    lookup = Lookup(
        overrides or ConfigStore(), classification, ENGINE_DEFAULTS, ENGINE_FALLBACKS,
    )
    chosen = {
        capability.value: validate_engine(
            capability, lookup.string(f"{capability.value}.engine"),
        )
        for capability in Capability
    }
    selection = EngineSelection(**chosen)
    logger.debug("Engine selection for %s: %s", classification, chosen)
    return selection


def builder_key(engine: str) -> str:
    """The builder an engine is routed to (aliases share a builder)."""
    return ENGINE_ALIASES.get(engine, engine)


def is_external(engine: str) -> bool:
    return engine in EXTERNAL_ENGINES
