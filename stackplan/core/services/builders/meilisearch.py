"""
Meilisearch — single Deployment; the index is rebuilt from the database
on loss, so it runs on ephemeral storage.
"""

from __future__ import annotations

from stackplan.core.models.config import SearchConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity, scrape_annotations
from stackplan.core.services.secrets import build_secret, secret_env

NAME = "meilisearch"
SECRET_NAME = "meilisearch-credentials"
DATA_DIR = "/meili_data"
MEILI_UID = 1000

CREDENTIAL_KEYS = {"master_key": "master-key"}


def build(config: SearchConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("meilisearch",), NAME)

    secret = build_secret(
        SECRET_NAME, namespace, {"master-key": config.master_key}, identity.labels,
    )
    if not config.enabled:
        return external_set(config, secret, CREDENTIAL_KEYS)

    meili_env = "production" if identity.environment == "production" else "development"
    server = {
        "name": NAME,
        "image": f"getmeili/meilisearch:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "ports": [k8s.container_port("http", config.port)],
        "env": [
            k8s.env_var("MEILI_ENV", meili_env),
            secret_env("MEILI_MASTER_KEY", SECRET_NAME, "master-key"),
            k8s.env_var("MEILI_HTTP_ADDR", f"0.0.0.0:{config.port}"),
            k8s.env_var("MEILI_NO_ANALYTICS", "true"),
            k8s.env_var("MEILI_EXPERIMENTAL_ENABLE_METRICS", "true"),
        ],
        "resources": k8s.resource_requirements("100m", "256Mi", "1", "1Gi"),
        "livenessProbe": k8s.liveness_probe(type="http", path="/health", port=config.port),
        "readinessProbe": k8s.readiness_probe(type="http", path="/health", port=config.port),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": MEILI_UID,
        },
        "volumeMounts": [k8s.volume_mount("data", DATA_DIR)],
    }
    template = k8s.pod_template(
        identity,
        [server],
        annotations=scrape_annotations(config.port),
        volumes=[k8s.empty_dir("data")],
        security_context=k8s.pod_security_context(MEILI_UID, MEILI_UID),
    )
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=k8s.deployment(NAME, namespace, identity, template, replicas=config.replicas),
        service=k8s.service(NAME, namespace, identity, [k8s.service_port("http", config.port)]),
        secret=secret,
        secret_name=SECRET_NAME,
        credential_keys=CREDENTIAL_KEYS,
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
