"""
Beanstalkd — StatefulSet with a binlog on a durable volume.
"""

from __future__ import annotations

from stackplan.core.models.config import QueueConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity

NAME = "beanstalkd"
BINLOG_DIR = "/var/lib/beanstalkd"
BEANSTALKD_UID = 65534


def build(config: QueueConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("beanstalkd",), NAME)
    if not config.enabled:
        return external_set(config)

    server = {
        "name": NAME,
        "image": f"schickling/beanstalkd:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "args": ["-p", str(config.port), "-b", BINLOG_DIR],
        "ports": [k8s.container_port(NAME, config.port)],
        "resources": k8s.resource_requirements("100m", "64Mi", "500m", "256Mi"),
        "livenessProbe": k8s.liveness_probe(type="tcp", port=config.port, initialDelaySeconds=10),
        "readinessProbe": k8s.readiness_probe(type="tcp", port=config.port),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": BEANSTALKD_UID,
        },
        "volumeMounts": [k8s.volume_mount("data", BINLOG_DIR)],
    }
    template = k8s.pod_template(
        identity, [server],
        security_context=k8s.pod_security_context(BEANSTALKD_UID, BEANSTALKD_UID),
    )
    workload = k8s.statefulset(
        NAME, namespace, identity, template,
        service_name=NAME,
        replicas=config.replicas,
        claims=[k8s.volume_claim("data", config.storage_size or "10Gi")],
    )
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        service=k8s.service(NAME, namespace, identity, [k8s.service_port(NAME, config.port)]),
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
