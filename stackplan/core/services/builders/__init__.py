"""
Resource builders — one per backend engine.

``BUILDERS`` maps each engine to its build function. Externally managed
engines share one builder that publishes credentials only. Aliases (valkey) share a
builder with the engine they are compatible with.

Every builder has the same contract::

    build(config, identity, namespace) -> ResourceSet
"""

from __future__ import annotations

from typing import Callable

from stackplan.core.errors import BuilderInvariantError
from stackplan.core.models.config import BackendConfig
from stackplan.core.models.engines import EXTERNAL_ENGINES
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services.builders import (
    beanstalkd,
    external,
    kafka,
    mailpit,
    meilisearch,
    memcached,
    minio,
    mysql,
    postgres,
    rabbitmq,
    redis,
)
from stackplan.core.services.labels import Identity

BuildFn = Callable[[BackendConfig, Identity, str], ResourceSet]

BUILDERS: dict[str, BuildFn] = {
    "postgresql": postgres.build,
    "mysql": mysql.build,
    "mariadb": mysql.build,
    "redis": redis.build,
    "valkey": redis.build,
    "memcached": memcached.build,
    "rabbitmq": rabbitmq.build,
    "kafka": kafka.build,
    "beanstalkd": beanstalkd.build,
    "minio": minio.build,
    "meilisearch": meilisearch.build,
    **{engine: external.build for engine in sorted(EXTERNAL_ENGINES)},
}


def builder_for(engine: str) -> BuildFn:
    """Look up the build function for an engine.

    Raises:
        BuilderInvariantError: If the engine has no registry entry.
    """
    try:
        return BUILDERS[engine]
    except KeyError:
        raise BuilderInvariantError(f"No builder registered for engine '{engine}'") from None


def build(config: BackendConfig, identity: Identity, namespace: str) -> ResourceSet:
    """Dispatch to the builder for ``config.engine``."""
    return builder_for(config.engine)(config, identity, namespace)


__all__ = ["BUILDERS", "BuildFn", "build", "builder_for", "mailpit"]
