"""
Memcached — Deployment with a memcached-exporter sidecar, no persistence.
"""

from __future__ import annotations

from stackplan.core.models.config import CacheConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import (
    exporter,
    external_set,
    in_cluster_endpoint,
    require_engine,
)
from stackplan.core.services.labels import Identity, scrape_annotations

NAME = "memcached"
EXPORTER_PORT = 9150
MEMORY_MB = 64


def build(config: CacheConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ("memcached",), NAME)
    if not config.enabled:
        return external_set(config)

    server = {
        "name": NAME,
        "image": f"memcached:{config.version}-alpine",
        "imagePullPolicy": "IfNotPresent",
        "args": ["-m", str(MEMORY_MB), "-c", "1024", "-t", "4"],
        "ports": [k8s.container_port(NAME, config.port)],
        "resources": k8s.resource_requirements("100m", "64Mi", "250m", "128Mi"),
        "livenessProbe": k8s.liveness_probe(
            type="tcp", port=config.port, initialDelaySeconds=10,
        ),
        "readinessProbe": k8s.readiness_probe(type="tcp", port=config.port),
        "securityContext": {
            **k8s.container_security_context(read_only_root=True),
            "runAsNonRoot": True,
            "runAsUser": 11211,
        },
    }
    metrics = exporter(
        "memcached-exporter",
        "prom/memcached-exporter:latest",
        EXPORTER_PORT,
        args=[f"--memcached.address=localhost:{config.port}"],
    )
    template = k8s.pod_template(
        identity,
        [server, metrics],
        annotations=scrape_annotations(EXPORTER_PORT),
        security_context=k8s.pod_security_context(11211, 11211),
    )
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=k8s.deployment(NAME, namespace, identity, template, replicas=config.replicas),
        service=k8s.service(NAME, namespace, identity, [
            k8s.service_port(NAME, config.port),
            k8s.service_port("metrics", EXPORTER_PORT),
        ]),
        endpoint=in_cluster_endpoint(NAME, config.port),
    )
