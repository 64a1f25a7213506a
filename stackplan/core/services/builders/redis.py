"""
Redis and Valkey — Deployment with a redis_exporter sidecar.

Valkey is routed here as a protocol-compatible alias: it gets its own
workload name, image and identity labels, but the same layout. The
builder also serves the queue capability when queue=redis runs without
a redis-family cache to share.
"""

from __future__ import annotations

from stackplan.core.models.config import BackendConfig
from stackplan.core.models.engines import SERVICE_NAMES
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

ENGINES = ("redis", "valkey")
EXPORTER_PORT = 9121
REDIS_UID = 999


def _image(engine: str, version: str) -> str:
    if engine == "valkey":
        return f"valkey/valkey:{version}-alpine"
    return f"redis:{version}-alpine"


def build(config: BackendConfig, identity: Identity, namespace: str) -> ResourceSet:
    require_engine(config, ENGINES, "redis")
    name = SERVICE_NAMES[config.engine]
    secret_name = f"{name}-password"
    password_key = f"{name}-password"
    keys = {"password": password_key}

    secret = None
    if config.password is not None:
        secret = build_secret(
            secret_name, namespace, {password_key: config.password}, identity.labels,
        )

    if not config.enabled:
        return external_set(config, secret, keys)

    command = [f"{'valkey' if config.engine == 'valkey' else 'redis'}-server"]
    env: list[dict] = []
    if secret is not None:
        command += ["--requirepass", "$(REDIS_PASSWORD)"]
        env.append(secret_env("REDIS_PASSWORD", secret_name, password_key))
    command += ["--appendonly", "yes" if getattr(config, "persistence", True) else "no"]
    eviction = getattr(config, "eviction_policy", None)
    if eviction:
        command += ["--maxmemory-policy", eviction]

    ping = ["redis-cli", "ping"]
    server = {
        "name": name,
        "image": _image(config.engine, config.version),
        "imagePullPolicy": "IfNotPresent",
        "command": command,
        "ports": [k8s.container_port("redis", config.port)],
        "env": env,
        "resources": k8s.resource_requirements("100m", "128Mi", "500m", "256Mi"),
        "livenessProbe": k8s.liveness_probe(type="exec", command=ping),
        "readinessProbe": k8s.readiness_probe(type="exec", command=ping),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": REDIS_UID,
        },
        "volumeMounts": [k8s.volume_mount("data", "/data")],
    }
    metrics = exporter(
        f"{name}-exporter",
        "oliver006/redis_exporter:latest",
        EXPORTER_PORT,
        env=list(env),
    )

    # Cache contents are disposable: ephemeral storage only.
    template = k8s.pod_template(
        identity,
        [server, metrics],
        annotations=scrape_annotations(EXPORTER_PORT),
        volumes=[k8s.empty_dir("data")],
        security_context=k8s.pod_security_context(REDIS_UID, REDIS_UID),
        termination_grace=30,
    )
    workload = k8s.deployment(
        name, namespace, identity, template,
        replicas=config.replicas,
        strategy={"type": "RollingUpdate", "rollingUpdate": {"maxSurge": 1, "maxUnavailable": 0}},
    )
    svc = k8s.service(name, namespace, identity, [
        k8s.service_port("redis", config.port),
        k8s.service_port("metrics", EXPORTER_PORT),
    ])
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        workload=workload,
        service=svc,
        secret=secret,
        secret_name=secret_name if secret else None,
        credential_keys=keys if secret else {},
        endpoint=in_cluster_endpoint(name, config.port),
    )
