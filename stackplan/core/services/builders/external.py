"""
Externally managed engines (s3, sqs, elasticsearch).

Nothing runs in the cluster. Where the service needs credentials they
are still published as a Secret under a fixed name, so the runtime tier
references them the same way it references in-cluster credentials.
"""

from __future__ import annotations

from stackplan.core.models.config import BackendConfig, SearchConfig, StorageConfig
from stackplan.core.models.engines import EXTERNAL_ENGINES
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services.builders.common import external_set, require_engine
from stackplan.core.services.labels import Identity
from stackplan.core.services.secrets import build_secret

S3_SECRET = "s3-credentials"
S3_KEYS = {"access_key": "access-key", "secret_key": "secret-key"}
ELASTICSEARCH_SECRET = "elasticsearch-credentials"
ELASTICSEARCH_KEYS = {"username": "elasticsearch-username", "password": "elasticsearch-password"}


def build(config: BackendConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, tuple(sorted(EXTERNAL_ENGINES)), "external")

    if isinstance(config, StorageConfig) and config.engine == "s3":
        secret = build_secret(S3_SECRET, namespace, {
            "access-key": config.access_key,
            "secret-key": config.secret_key,
        }, identity.labels)
        return external_set(config, secret, S3_KEYS)

    if isinstance(config, SearchConfig) and config.password is not None:
        secret = build_secret(ELASTICSEARCH_SECRET, namespace, {
            "elasticsearch-username": config.username,
            "elasticsearch-password": config.password,
        }, identity.labels)
        return external_set(config, secret, ELASTICSEARCH_KEYS)

    return external_set(config)
