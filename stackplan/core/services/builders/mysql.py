"""
MySQL and MariaDB — one StatefulSet builder, two engine flavours.

Both speak the MySQL wire protocol and share probes and layout; they
differ only in image, workload name and secret key prefix.
"""

from __future__ import annotations

from stackplan.core.models.config import DatabaseConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity
from stackplan.core.services.secrets import build_secret, secret_env

ENGINES = ("mysql", "mariadb")
DATA_DIR = "/var/lib/mysql"
MYSQL_UID = 999


def secret_name(engine: str) -> str:
    return f"{engine}-credentials"


def credential_keys(engine: str) -> dict[str, str]:
    return {
        "root_password": f"{engine}-root-password",
        "password": f"{engine}-password",
        "database": f"{engine}-database",
        "username": f"{engine}-user",
    }


def build(config: DatabaseConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ENGINES, "mysql")
    name = config.engine
    keys = credential_keys(name)
    secret_ref = secret_name(name)

    # Root and application user share the resolved password.
    secret = build_secret(secret_ref, namespace, {
        keys["root_password"]: config.password,
        keys["password"]: config.password,
        keys["database"]: config.database,
        keys["username"]: config.username,
    }, identity.labels)

    if not config.enabled:
        return external_set(config, secret, keys)

    env_prefix = "MARIADB" if name == "mariadb" else "MYSQL"
    ping = ["mysqladmin", "ping", "-h", "localhost"]
    volume = f"{name}-data"

    server = {
        "name": name,
        "image": f"{name}:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "ports": [k8s.container_port(name, config.port)],
        "env": [
            secret_env(f"{env_prefix}_ROOT_PASSWORD", secret_ref, keys["root_password"]),
            secret_env(f"{env_prefix}_DATABASE", secret_ref, keys["database"]),
            secret_env(f"{env_prefix}_USER", secret_ref, keys["username"]),
            secret_env(f"{env_prefix}_PASSWORD", secret_ref, keys["password"]),
        ],
        "resources": k8s.resource_requirements("250m", "512Mi", "1", "1Gi"),
        "volumeMounts": [k8s.volume_mount(volume, DATA_DIR)],
        "livenessProbe": k8s.liveness_probe(type="exec", command=ping),
        "readinessProbe": k8s.readiness_probe(type="exec", command=ping),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": MYSQL_UID,
        },
    }

    template = k8s.pod_template(
        identity, [server],
        security_context=k8s.pod_security_context(MYSQL_UID, MYSQL_UID),
    )
    workload = k8s.statefulset(
        name, namespace, identity, template,
        service_name=name,
        replicas=config.replicas,
        claims=[k8s.volume_claim(volume, config.storage_size or "10Gi")],
    )
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        headless_service=k8s.headless_service(
            name, namespace, identity, [k8s.service_port(name, config.port)],
        ),
        secret=secret,
        secret_name=secret_ref,
        credential_keys=keys,
        endpoint=in_cluster_endpoint(name, config.port),
    )
