"""
MinIO — StatefulSet object store with a separate console port.
"""

from __future__ import annotations

from stackplan.core.models.config import StorageConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity, scrape_annotations
from stackplan.core.services.secrets import build_secret, secret_env

NAME = "minio"
HEADLESS = "minio-headless"
SECRET_NAME = "minio-credentials"
METRICS_PATH = "/minio/v2/metrics/cluster"

CREDENTIAL_KEYS = {"access_key": "root-user", "secret_key": "root-password"}


def build(config: StorageConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("minio",), NAME)

    secret = build_secret(SECRET_NAME, namespace, {
        "root-user": config.access_key,
        "root-password": config.secret_key,
    }, identity.labels)

    if not config.enabled:
        return external_set(config, secret, CREDENTIAL_KEYS)

    console_port = config.console_port or 9001
    server = {
        "name": NAME,
        "image": f"minio/minio:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "command": ["minio", "server", "/data", "--console-address", f":{console_port}"],
        "ports": [
            k8s.container_port("api", config.port),
            k8s.container_port("console", console_port),
        ],
        "env": [
            secret_env("MINIO_ROOT_USER", SECRET_NAME, "root-user"),
            secret_env("MINIO_ROOT_PASSWORD", SECRET_NAME, "root-password"),
            k8s.env_var("MINIO_PROMETHEUS_AUTH_TYPE", "public"),
        ],
        "resources": k8s.resource_requirements("250m", "512Mi", "1", "1Gi"),
        "livenessProbe": k8s.liveness_probe(
            type="http", path="/minio/health/live", port=config.port,
        ),
        "readinessProbe": k8s.readiness_probe(
            type="http", path="/minio/health/ready", port=config.port,
        ),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": 1000,
        },
        "volumeMounts": [k8s.volume_mount("data", "/data")],
    }
    template = k8s.pod_template(
        identity,
        [server],
        annotations=scrape_annotations(config.port, METRICS_PATH),
        security_context=k8s.pod_security_context(1000, 1000),
    )
    workload = k8s.statefulset(
        NAME, namespace, identity, template,
        service_name=HEADLESS,
        replicas=config.replicas,
        claims=[k8s.volume_claim("data", config.storage_size or "20Gi")],
    )
    ports = [
        k8s.service_port("api", config.port),
        k8s.service_port("console", console_port),
    ]
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        service=k8s.service(NAME, namespace, identity, ports),
        headless_service=k8s.headless_service(HEADLESS, namespace, identity, ports),
        secret=secret,
        secret_name=SECRET_NAME,
        credential_keys=CREDENTIAL_KEYS,
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
