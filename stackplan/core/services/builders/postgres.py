"""
PostgreSQL — StatefulSet with a postgres-exporter sidecar.
"""

from __future__ import annotations

from stackplan.core.models.config import DatabaseConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    exporter,
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity, scrape_annotations
from stackplan.core.services.secrets import build_secret, secret_env

NAME = "postgres"
SECRET_NAME = "postgres-credentials"
EXPORTER_PORT = 9187
DATA_DIR = "/var/lib/postgresql/data"
POSTGRES_UID = 999

CREDENTIAL_KEYS = {
    "password": "postgres-password",
    "username": "postgres-user",
    "database": "postgres-db",
}


def build(config: DatabaseConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("postgresql",), "postgres")

    secret = build_secret(SECRET_NAME, namespace, {
        "postgres-password": config.password,
        "postgres-user": config.username,
        "postgres-db": config.database,
    }, identity.labels)

    if not config.enabled:
        return external_set(config, secret, CREDENTIAL_KEYS)

    ready_cmd = ["sh", "-c", "pg_isready -U $POSTGRES_USER -d $POSTGRES_DB"]
    env = [
        secret_env("POSTGRES_DB", SECRET_NAME, "postgres-db"),
        secret_env("POSTGRES_USER", SECRET_NAME, "postgres-user"),
        secret_env("POSTGRES_PASSWORD", SECRET_NAME, "postgres-password"),
        k8s.env_var("PGDATA", f"{DATA_DIR}/pgdata"),
    ]
    if config.extensions:
        env.append(k8s.env_var("POSTGRES_EXTENSIONS", ",".join(config.extensions)))

    server = {
        "name": NAME,
        "image": f"postgres:{config.version}-alpine",
        "imagePullPolicy": "IfNotPresent",
        "ports": [k8s.container_port(NAME, config.port)],
        "env": env,
        "resources": k8s.resource_requirements("250m", "256Mi", "1", "512Mi"),
        "livenessProbe": k8s.liveness_probe(type="exec", command=ready_cmd),
        "readinessProbe": k8s.readiness_probe(type="exec", command=ready_cmd),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": POSTGRES_UID,
        },
        "volumeMounts": [k8s.volume_mount("data", DATA_DIR)],
    }
    metrics = exporter(
        "postgres-exporter",
        "prometheuscommunity/postgres-exporter:latest",
        EXPORTER_PORT,
        env=[
            secret_env("DATA_SOURCE_USER", SECRET_NAME, "postgres-user"),
            secret_env("DATA_SOURCE_PASS", SECRET_NAME, "postgres-password"),
            k8s.env_var(
                "DATA_SOURCE_URI",
                f"localhost:{config.port}/postgres?sslmode={'require' if config.tls else 'disable'}",
            ),
        ],
    )

    template = k8s.pod_template(
        identity,
        [server, metrics],
        annotations=scrape_annotations(EXPORTER_PORT),
        security_context=k8s.pod_security_context(POSTGRES_UID, POSTGRES_UID),
    )
    workload = k8s.statefulset(
        NAME, namespace, identity, template,
        service_name=NAME,
        replicas=config.replicas,
        claims=[k8s.volume_claim("data", config.storage_size or "10Gi")],
    )
    ports = [
        k8s.service_port(NAME, config.port),
        k8s.service_port("metrics", EXPORTER_PORT),
    ]
    # The headless service carries the engine's conventional name so pods
    # resolve as postgres-0.postgres; clients use the same name.
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        headless_service=k8s.headless_service(NAME, namespace, identity, ports),
        secret=secret,
        secret_name=SECRET_NAME,
        credential_keys=CREDENTIAL_KEYS,
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
