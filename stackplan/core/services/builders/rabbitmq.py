"""
RabbitMQ — StatefulSet with management UI and a rabbitmq-exporter sidecar.

Nodes are named ``rabbit@$(POD_NAME).rabbitmq-headless...`` so each
node's identity is its ordinal pod name and survives rescheduling.
"""

from __future__ import annotations

from stackplan.core.models.config import QueueConfig
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

NAME = "rabbitmq"
HEADLESS = "rabbitmq-headless"
SECRET_NAME = "rabbitmq-credentials"
EXPORTER_PORT = 9419
DATA_DIR = "/var/lib/rabbitmq"

CREDENTIAL_KEYS = {
    "username": "rabbitmq-username",
    "password": "rabbitmq-password",
    "erlang_cookie": "rabbitmq-erlang-cookie",
}


def build(config: QueueConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("rabbitmq",), NAME)

    secret = build_secret(SECRET_NAME, namespace, {
        "rabbitmq-username": config.username,
        "rabbitmq-password": config.password,
        "rabbitmq-erlang-cookie": config.erlang_cookie,
    }, identity.labels)

    if not config.enabled:
        return external_set(config, secret, CREDENTIAL_KEYS)

    management_port = config.management_port or 15672
    ping = ["rabbitmq-diagnostics", "ping"]
    server = {
        "name": NAME,
        "image": f"rabbitmq:{config.version}-management-alpine",
        "imagePullPolicy": "IfNotPresent",
        "ports": [
            k8s.container_port("amqp", config.port),
            k8s.container_port("management", management_port),
        ],
        "env": [
            k8s.field_env("POD_NAME", "metadata.name"),
            secret_env("RABBITMQ_DEFAULT_USER", SECRET_NAME, "rabbitmq-username"),
            secret_env("RABBITMQ_DEFAULT_PASS", SECRET_NAME, "rabbitmq-password"),
            secret_env("RABBITMQ_ERLANG_COOKIE", SECRET_NAME, "rabbitmq-erlang-cookie"),
            k8s.env_var("RABBITMQ_USE_LONGNAME", "true"),
            k8s.env_var(
                "RABBITMQ_NODENAME",
                f"rabbit@$(POD_NAME).{HEADLESS}.{namespace}.svc.cluster.local",
            ),
        ],
        "resources": k8s.resource_requirements("250m", "512Mi", "1", "1Gi"),
        "livenessProbe": k8s.liveness_probe(type="exec", command=ping, initialDelaySeconds=60),
        "readinessProbe": k8s.readiness_probe(type="exec", command=ping, initialDelaySeconds=20),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": 999,
        },
        "volumeMounts": [k8s.volume_mount("data", DATA_DIR)],
    }
    metrics = exporter(
        "rabbitmq-exporter",
        "kbudde/rabbitmq-exporter:latest",
        EXPORTER_PORT,
        env=[
            k8s.env_var("RABBIT_URL", f"http://localhost:{management_port}"),
            secret_env("RABBIT_USER", SECRET_NAME, "rabbitmq-username"),
            secret_env("RABBIT_PASSWORD", SECRET_NAME, "rabbitmq-password"),
            k8s.env_var("PUBLISH_PORT", EXPORTER_PORT),
        ],
    )

    template = k8s.pod_template(
        identity,
        [server, metrics],
        annotations=scrape_annotations(EXPORTER_PORT),
        security_context=k8s.pod_security_context(999, 999),
        termination_grace=60,
    )
    workload = k8s.statefulset(
        NAME, namespace, identity, template,
        service_name=HEADLESS,
        replicas=config.replicas,
        claims=[k8s.volume_claim("data", config.storage_size or "10Gi")],
    )
    ports = [
        k8s.service_port("amqp", config.port),
        k8s.service_port("management", management_port),
        k8s.service_port("metrics", EXPORTER_PORT),
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
