"""
Kafka (KRaft) — StatefulSet with a JMX exporter sidecar.

Broker identity comes from the pod's ordinal: the node id is read
from the ``apps.kubernetes.io/pod-index`` label and the advertised
listener from the pod name, both through the downward API. Nothing in
the pod template depends on the replica count, so scaling out adds
brokers without touching existing ones.
"""

from __future__ import annotations

from pydantic import BaseModel

from stackplan.core.errors import BuilderInvariantError
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

NAME = "kafka"
HEADLESS = "kafka-headless"
SECRET_NAME = "kafka-credentials"
CONTROLLER_PORT = 9093
EXPORTER_PORT = 9308
JMX_PORT = 9999
DATA_DIR = "/var/lib/kafka/data"
POD_INDEX_LABEL = "apps.kubernetes.io/pod-index"

CREDENTIAL_KEYS = {"username": "kafka-username", "password": "kafka-password"}

SASL_MECHANISM = "PLAIN"

# apache/kafka maps env to properties: "_" → ".", "__" → "_".
JAAS_ENV = "KAFKA_LISTENER_NAME_SASL__PLAINTEXT_PLAIN_SASL_JAAS_CONFIG"
PLAIN_JAAS = (
    "org.apache.kafka.common.security.plain.PlainLoginModule required "
    'username="$(SASL_USERNAME)" password="$(SASL_PASSWORD)" '
    'user_$(SASL_USERNAME)="$(SASL_PASSWORD)";'
)


class BrokerIdentity(BaseModel):
    """What one broker resolves to at runtime."""

    ordinal: int
    node_id: int
    pod_name: str
    advertised_listener: str


def _peer_host(pod_name: str, namespace: str) -> str:
    return f"{pod_name}.{HEADLESS}.{namespace}.svc.cluster.local"


def broker_identity(ordinal: int, namespace: str, port: int = 9092) -> BrokerIdentity:
    """Identity the pod template yields for the broker at ``ordinal``."""
    pod = f"{NAME}-{ordinal}"
    return BrokerIdentity(
        ordinal=ordinal,
        node_id=ordinal,
        pod_name=pod,
        advertised_listener=f"PLAINTEXT://{_peer_host(pod, namespace)}:{port}",
    )


def broker_identities(replicas: int, namespace: str, port: int = 9092) -> list[BrokerIdentity]:
    return [broker_identity(i, namespace, port) for i in range(replicas)]


def sasl_env() -> list[dict]:
    """Broker env enforcing SASL on the client and inter-broker listener.

    The credentials come first so the JAAS line can reference them with
    ``$(VAR)`` expansion. The controller listener stays PLAINTEXT.
    """
    return [
        secret_env("SASL_USERNAME", SECRET_NAME, "kafka-username"),
        secret_env("SASL_PASSWORD", SECRET_NAME, "kafka-password"),
        k8s.env_var("KAFKA_SASL_ENABLED_MECHANISMS", SASL_MECHANISM),
        k8s.env_var("KAFKA_SASL_MECHANISM_INTER_BROKER_PROTOCOL", SASL_MECHANISM),
        k8s.env_var(JAAS_ENV, PLAIN_JAAS),
    ]


def build(config: QueueConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("kafka",), NAME)

    secret = None
    if config.sasl_mechanism and config.username and config.password is not None:
        secret = build_secret(SECRET_NAME, namespace, {
            "kafka-username": config.username,
            "kafka-password": config.password,
        }, identity.labels)

    if not config.enabled:
        return external_set(config, secret, CREDENTIAL_KEYS)

    if secret is not None and config.sasl_mechanism != SASL_MECHANISM:
        raise BuilderInvariantError(
            f"in-cluster kafka enforces {SASL_MECHANISM}, got {config.sasl_mechanism}"
        )
    listener = "SASL_PLAINTEXT" if secret is not None else "PLAINTEXT"
    env = [
        k8s.field_env("POD_NAME", "metadata.name"),
        k8s.field_env("KAFKA_NODE_ID", f"metadata.labels['{POD_INDEX_LABEL}']"),
        k8s.env_var("KAFKA_PROCESS_ROLES", "broker,controller"),
        # Dynamic quorum: every broker bootstraps from the first controller.
        k8s.env_var(
            "KAFKA_CONTROLLER_QUORUM_BOOTSTRAP_SERVERS",
            f"{_peer_host(f'{NAME}-0', namespace)}:{CONTROLLER_PORT}",
        ),
        k8s.env_var("KAFKA_LISTENERS", f"{listener}://:{config.port},CONTROLLER://:{CONTROLLER_PORT}"),
        k8s.env_var(
            "KAFKA_ADVERTISED_LISTENERS",
            f"{listener}://$(POD_NAME).{HEADLESS}.{namespace}.svc.cluster.local:{config.port}",
        ),
        k8s.env_var(
            "KAFKA_LISTENER_SECURITY_PROTOCOL_MAP", f"CONTROLLER:PLAINTEXT,{listener}:{listener}",
        ),
        k8s.env_var("KAFKA_CONTROLLER_LISTENER_NAMES", "CONTROLLER"),
        k8s.env_var("KAFKA_INTER_BROKER_LISTENER_NAME", listener),
        k8s.env_var("KAFKA_LOG_DIRS", DATA_DIR),
        k8s.env_var("KAFKA_NUM_NETWORK_THREADS", 3),
        k8s.env_var("KAFKA_NUM_IO_THREADS", 8),
        k8s.env_var("KAFKA_LOG_RETENTION_HOURS", 168),
        k8s.env_var("KAFKA_LOG_SEGMENT_BYTES", 1073741824),
        k8s.env_var("KAFKA_JMX_PORT", JMX_PORT),
        k8s.env_var("KAFKA_JMX_HOSTNAME", "localhost"),
    ]
    if secret is not None:
        env += sasl_env()

    broker = {
        "name": NAME,
        "image": f"apache/kafka:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "ports": [
            k8s.container_port(NAME, config.port),
            k8s.container_port("controller", CONTROLLER_PORT),
        ],
        "env": env,
        "resources": k8s.resource_requirements("500m", "1Gi", "2", "2Gi"),
        "livenessProbe": k8s.liveness_probe(type="tcp", port=config.port, initialDelaySeconds=60),
        "readinessProbe": k8s.readiness_probe(type="tcp", port=config.port, initialDelaySeconds=30),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": 1000,
        },
        "volumeMounts": [k8s.volume_mount("data", DATA_DIR)],
    }
    metrics = exporter(
        "jmx-exporter",
        "bitnami/jmx-exporter:latest",
        EXPORTER_PORT,
        env=[k8s.env_var("SERVICE_PORT", EXPORTER_PORT)],
    )

    template = k8s.pod_template(
        identity,
        [broker, metrics],
        annotations=scrape_annotations(EXPORTER_PORT),
        security_context=k8s.pod_security_context(1000, 1000),
        termination_grace=60,
    )
    workload = k8s.statefulset(
        NAME, namespace, identity, template,
        service_name=HEADLESS,
        replicas=config.replicas,
        claims=[k8s.volume_claim("data", config.storage_size or "10Gi")],
        pod_management="Parallel",
    )
    ports = [
        k8s.service_port(NAME, config.port),
        k8s.service_port("controller", CONTROLLER_PORT),
        k8s.service_port("metrics", EXPORTER_PORT),
    ]
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        service=k8s.service(NAME, namespace, identity, [ports[0], ports[2]]),
        headless_service=k8s.headless_service(HEADLESS, namespace, identity, ports),
        secret=secret,
        secret_name=SECRET_NAME if secret else None,
        credential_keys=CREDENTIAL_KEYS if secret else {},
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
