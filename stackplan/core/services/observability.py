"""
Observability stack — Prometheus, Grafana, Loki, Tempo, Alertmanager.

Each tool is an independent Deployment + Service gated only by its own
flag. Grafana's admin password is published as a Secret.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from stackplan.core.models.config import ResolvedConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.labels import Identity
from stackplan.core.services.secrets import build_secret, secret_env

logger = logging.getLogger(__name__)

GRAFANA_SECRET = "grafana-admin"


@dataclass(frozen=True)
class ToolSpec:
    """Static description of one observability tool."""

    name: str
    image: str
    ports: tuple[tuple[str, int], ...]
    args: tuple[str, ...] = ()
    health_path: str = ""
    data_dir: str = ""
    resources: tuple[str, str, str, str] = ("100m", "128Mi", "500m", "512Mi")
    env: tuple[tuple[str, str], ...] = field(default_factory=tuple)
    uid: int = 65534


TOOLS: dict[str, ToolSpec] = {
    "prometheus": ToolSpec(
        name="prometheus",
        image="prom/prometheus:latest",
        ports=(("http", 9090),),
        args=(
            "--config.file=/etc/prometheus/prometheus.yml",
            "--storage.tsdb.path=/prometheus",
            "--storage.tsdb.retention.time=15d",
        ),
        health_path="/-/healthy",
        data_dir="/prometheus",
        resources=("250m", "512Mi", "1", "2Gi"),
    ),
    "grafana": ToolSpec(
        name="grafana",
        image="grafana/grafana:latest",
        ports=(("http", 3000),),
        health_path="/api/health",
        data_dir="/var/lib/grafana",
        uid=472,
        env=(("GF_INSTALL_PLUGINS", "grafana-piechart-panel"),),
    ),
    "loki": ToolSpec(
        name="loki",
        image="grafana/loki:latest",
        ports=(("http", 3100),),
        args=("-config.file=/etc/loki/local-config.yaml",),
        health_path="/ready",
        data_dir="/loki",
        uid=10001,
        resources=("100m", "256Mi", "500m", "1Gi"),
    ),
    "tempo": ToolSpec(
        name="tempo",
        image="grafana/tempo:latest",
        ports=(("http", 3200), ("otlp-grpc", 4317)),
        args=("-config.file=/etc/tempo.yaml",),
        health_path="/ready",
        data_dir="/var/tempo",
        uid=10001,
    ),
    "alertmanager": ToolSpec(
        name="alertmanager",
        image="prom/alertmanager:latest",
        ports=(("http", 9093),),
        args=("--config.file=/etc/alertmanager/config.yml", "--storage.path=/alertmanager"),
        health_path="/-/healthy",
        data_dir="/alertmanager",
        resources=("50m", "64Mi", "250m", "256Mi"),
    ),
}


def _build_tool(spec: ToolSpec, config: ResolvedConfig, namespace: str) -> ResourceSet:
    identity = Identity(
        name=spec.name, component="observability",
        environment=config.classification.value,
    )
    primary_port = spec.ports[0][1]
    env = [k8s.env_var(k, v) for k, v in spec.env]
    secret = None
    if spec.name == "grafana":
        env.insert(0, secret_env("GF_SECURITY_ADMIN_PASSWORD", GRAFANA_SECRET, "admin-password"))
        secret = build_secret(
            GRAFANA_SECRET, namespace,
            {"admin-password": config.observability.grafana_admin_password},
            identity.labels,
        )

    cpu_req, mem_req, cpu_lim, mem_lim = spec.resources
    container: dict = {
        "name": spec.name,
        "image": spec.image,
        "imagePullPolicy": "IfNotPresent",
    }
    if spec.args:
        container["args"] = list(spec.args)
    container["ports"] = [k8s.container_port(n, p) for n, p in spec.ports]
    if env:
        container["env"] = env
    container["resources"] = k8s.resource_requirements(cpu_req, mem_req, cpu_lim, mem_lim)
    if spec.health_path:
        container["livenessProbe"] = k8s.liveness_probe(
            type="http", path=spec.health_path, port=primary_port,
        )
        container["readinessProbe"] = k8s.readiness_probe(
            type="http", path=spec.health_path, port=primary_port,
        )
    container["securityContext"] = {
        **k8s.container_security_context(),
        "runAsNonRoot": True,
        "runAsUser": spec.uid,
    }
    volumes = []
    if spec.data_dir:
        container["volumeMounts"] = [k8s.volume_mount("data", spec.data_dir)]
        volumes.append(k8s.empty_dir("data"))

    template = k8s.pod_template(
        identity, [container],
        volumes=volumes,
        security_context=k8s.pod_security_context(spec.uid, spec.uid),
    )
    return ResourceSet(
        role=spec.name,
        engine=spec.name,
        workload=k8s.deployment(spec.name, namespace, identity, template, replicas=1),
        service=k8s.service(
            spec.name, namespace, identity,
            [k8s.service_port(n, p) for n, p in spec.ports],
        ),
        secret=secret,
        secret_name=GRAFANA_SECRET if secret else None,
        endpoint=f"{spec.name}:{primary_port}",
    )


def enabled_tools(config: ResolvedConfig) -> list[str]:
    obs = config.observability
    return [name for name in TOOLS if getattr(obs, name)]


def build_observability(config: ResolvedConfig, namespace: str) -> dict[str, ResourceSet]:
    """Build every enabled tool, keyed by tool name."""
    tools = {
        name: _build_tool(TOOLS[name], config, namespace)
        for name in enabled_tools(config)
    }
    logger.debug("Observability tools: %s", ", ".join(tools) or "none")
    return tools
