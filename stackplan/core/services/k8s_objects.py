"""
Kubernetes object builders — plain-dict manifests.

Small composable helpers shared by every resource builder: probes,
resource envelopes, pod templates, Deployments, StatefulSets with
volume claim templates, Services, autoscalers, disruption budgets and
the namespace-level policy objects.
"""

from __future__ import annotations

from typing import Any, Mapping

from stackplan.core.services.labels import Identity, managed_annotations

_API_VERSIONS = {
    "Deployment": "apps/v1",
    "StatefulSet": "apps/v1",
    "Ingress": "networking.k8s.io/v1",
    "NetworkPolicy": "networking.k8s.io/v1",
    "HorizontalPodAutoscaler": "autoscaling/v2",
    "PodDisruptionBudget": "policy/v1",
}

LIVENESS_TIMEOUT = 5
READINESS_TIMEOUT = 3
FAILURE_THRESHOLD = 3


def api_version_for_kind(kind: str) -> str:
    """Resolve the conventional apiVersion for a K8s kind."""
    return _API_VERSIONS.get(kind, "v1")


def metadata(
    name: str,
    namespace: str | None,
    labels: Mapping[str, str],
    annotations: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    meta: dict[str, Any] = {"name": name}
    if namespace:
        meta["namespace"] = namespace
    meta["labels"] = dict(labels)
    meta["annotations"] = managed_annotations(annotations)
    return meta


# ── Probes & resources ──────────────────────────────────────────


def build_probe(probe: dict) -> dict:
    """Convert a compact probe description to a K8s probe spec.

    Input shape:
        {type: "http"|"tcp"|"exec", path, port, command,
         initialDelaySeconds, periodSeconds, timeoutSeconds, failureThreshold}
    """
    p: dict = {}
    ptype = probe.get("type", "http")
    if ptype == "http":
        p["httpGet"] = {"path": probe.get("path", "/health"), "port": probe["port"]}
    elif ptype == "tcp":
        p["tcpSocket"] = {"port": probe["port"]}
    else:  # exec
        p["exec"] = {"command": list(probe["command"])}

    for key in ("initialDelaySeconds", "periodSeconds", "timeoutSeconds", "failureThreshold"):
        value = probe.get(key)
        if value:
            p[key] = int(value)
    return p


def liveness_probe(**probe: Any) -> dict:
    probe.setdefault("timeoutSeconds", LIVENESS_TIMEOUT)
    probe.setdefault("failureThreshold", FAILURE_THRESHOLD)
    probe.setdefault("initialDelaySeconds", 30)
    probe.setdefault("periodSeconds", 10)
    return build_probe(probe)


def readiness_probe(**probe: Any) -> dict:
    probe.setdefault("timeoutSeconds", READINESS_TIMEOUT)
    probe.setdefault("failureThreshold", FAILURE_THRESHOLD)
    probe.setdefault("initialDelaySeconds", 5)
    probe.setdefault("periodSeconds", 5)
    return build_probe(probe)


def resource_requirements(
    cpu_request: str,
    memory_request: str,
    cpu_limit: str | None = None,
    memory_limit: str | None = None,
) -> dict:
    reqs: dict = {"requests": {"cpu": cpu_request, "memory": memory_request}}
    limits = {}
    if cpu_limit:
        limits["cpu"] = cpu_limit
    if memory_limit:
        limits["memory"] = memory_limit
    if limits:
        reqs["limits"] = limits
    return reqs


def pod_security_context(
    run_as_user: int | None = None,
    fs_group: int | None = None,
    run_as_non_root: bool = True,
) -> dict:
    ctx: dict = {"runAsNonRoot": run_as_non_root}
    if run_as_user is not None:
        ctx["runAsUser"] = run_as_user
    if fs_group is not None:
        ctx["fsGroup"] = fs_group
    ctx["seccompProfile"] = {"type": "RuntimeDefault"}
    return ctx


def container_security_context(read_only_root: bool = False) -> dict:
    return {
        "allowPrivilegeEscalation": False,
        "readOnlyRootFilesystem": read_only_root,
        "capabilities": {"drop": ["ALL"]},
    }


def container_port(name: str, port: int, protocol: str = "TCP") -> dict:
    return {"name": name, "containerPort": port, "protocol": protocol}


def service_port(name: str, port: int, target_port: int | str | None = None) -> dict:
    return {
        "name": name,
        "port": port,
        "targetPort": target_port if target_port is not None else port,
        "protocol": "TCP",
    }


def env_var(name: str, value: Any) -> dict:
    return {"name": name, "value": str(value)}


def field_env(name: str, field_path: str) -> dict:
    """Env var populated from the downward API."""
    return {"name": name, "valueFrom": {"fieldRef": {"fieldPath": field_path}}}


def empty_dir(name: str, size_limit: str | None = None, memory: bool = False) -> dict:
    spec: dict = {}
    if memory:
        spec["medium"] = "Memory"
    if size_limit:
        spec["sizeLimit"] = size_limit
    return {"name": name, "emptyDir": spec}


def volume_mount(name: str, mount_path: str, sub_path: str | None = None) -> dict:
    vm = {"name": name, "mountPath": mount_path}
    if sub_path:
        vm["subPath"] = sub_path
    return vm


def volume_claim(
    name: str,
    size: str,
    access_mode: str = "ReadWriteOnce",
    storage_class: str | None = None,
) -> dict:
    """A volumeClaimTemplates entry: one durable volume per replica."""
    spec: dict = {
        "accessModes": [access_mode],
        "resources": {"requests": {"storage": size}},
    }
    if storage_class:
        spec["storageClassName"] = storage_class
    return {"metadata": {"name": name}, "spec": spec}


# ── Workloads ───────────────────────────────────────────────────


def pod_template(
    identity: Identity,
    containers: list[dict],
    *,
    annotations: Mapping[str, str] | None = None,
    volumes: list[dict] | None = None,
    security_context: dict | None = None,
    termination_grace: int | None = None,
    init_containers: list[dict] | None = None,
) -> dict:
    meta: dict[str, Any] = {"labels": identity.labels}
    if annotations:
        meta["annotations"] = dict(annotations)
    spec: dict[str, Any] = {"containers": containers}
    if init_containers:
        spec["initContainers"] = init_containers
    if volumes:
        spec["volumes"] = volumes
    if security_context:
        spec["securityContext"] = security_context
    if termination_grace is not None:
        spec["terminationGracePeriodSeconds"] = termination_grace
    return {"metadata": meta, "spec": spec}


def deployment(
    name: str,
    namespace: str,
    identity: Identity,
    template: dict,
    replicas: int | None = 1,
    strategy: dict | None = None,
) -> dict:
    """Deployment manifest. ``replicas=None`` leaves scaling to an autoscaler."""
    spec: dict[str, Any] = {}
    if replicas is not None:
        spec["replicas"] = replicas
    spec["selector"] = {"matchLabels": identity.selector}
    if strategy:
        spec["strategy"] = strategy
    spec["template"] = template
    return {
        "apiVersion": api_version_for_kind("Deployment"),
        "kind": "Deployment",
        "metadata": metadata(name, namespace, identity.labels),
        "spec": spec,
    }


def statefulset(
    name: str,
    namespace: str,
    identity: Identity,
    template: dict,
    *,
    service_name: str,
    replicas: int = 1,
    claims: list[dict] | None = None,
    pod_management: str | None = None,
) -> dict:
    spec: dict[str, Any] = {
        "serviceName": service_name,
        "replicas": replicas,
        "selector": {"matchLabels": identity.selector},
    }
    if pod_management:
        spec["podManagementPolicy"] = pod_management
    spec["template"] = template
    if claims:
        spec["volumeClaimTemplates"] = claims
    return {
        "apiVersion": api_version_for_kind("StatefulSet"),
        "kind": "StatefulSet",
        "metadata": metadata(name, namespace, identity.labels),
        "spec": spec,
    }


def service(
    name: str,
    namespace: str,
    identity: Identity,
    ports: list[dict],
    *,
    headless: bool = False,
    service_type: str = "ClusterIP",
    session_affinity: str | None = None,
    annotations: Mapping[str, str] | None = None,
) -> dict:
    spec: dict[str, Any] = {"type": service_type}
    if headless:
        spec["clusterIP"] = "None"
        spec["publishNotReadyAddresses"] = True
    spec["selector"] = identity.selector
    spec["ports"] = ports
    if session_affinity:
        spec["sessionAffinity"] = session_affinity
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata(name, namespace, identity.labels, annotations),
        "spec": spec,
    }


def headless_service(name: str, namespace: str, identity: Identity, ports: list[dict]) -> dict:
    """Stable per-pod DNS for a StatefulSet."""
    return service(name, namespace, identity, ports, headless=True)


# ── Scaling & availability ──────────────────────────────────────


def autoscaler(
    name: str,
    namespace: str,
    identity: Identity,
    *,
    target_kind: str,
    min_replicas: int,
    max_replicas: int,
    cpu_utilization: int = 70,
) -> dict:
    return {
        "apiVersion": api_version_for_kind("HorizontalPodAutoscaler"),
        "kind": "HorizontalPodAutoscaler",
        "metadata": metadata(name, namespace, identity.labels),
        "spec": {
            "scaleTargetRef": {
                "apiVersion": api_version_for_kind(target_kind),
                "kind": target_kind,
                "name": name,
            },
            "minReplicas": min_replicas,
            "maxReplicas": max_replicas,
            "metrics": [{
                "type": "Resource",
                "resource": {
                    "name": "cpu",
                    "target": {"type": "Utilization", "averageUtilization": cpu_utilization},
                },
            }],
        },
    }


def disruption_budget(name: str, namespace: str, identity: Identity, replicas: int) -> dict:
    """PodDisruptionBudget keeping at least half the replicas (minimum one)."""
    return {
        "apiVersion": api_version_for_kind("PodDisruptionBudget"),
        "kind": "PodDisruptionBudget",
        "metadata": metadata(name, namespace, identity.labels),
        "spec": {
            "minAvailable": max(1, replicas // 2),
            "selector": {"matchLabels": identity.selector},
        },
    }


# ── Namespace-level objects ─────────────────────────────────────


def namespace(name: str, labels: Mapping[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": metadata(name, None, labels),
    }


def network_policy(
    name: str,
    namespace: str,
    labels: Mapping[str, str],
    *,
    pod_selector: Mapping[str, str] | None = None,
    ingress: list[dict] | None = None,
    policy_types: tuple[str, ...] = ("Ingress",),
) -> dict:
    spec: dict[str, Any] = {
        "podSelector": {"matchLabels": dict(pod_selector)} if pod_selector else {},
        "policyTypes": list(policy_types),
    }
    if ingress is not None:
        spec["ingress"] = ingress
    return {
        "apiVersion": api_version_for_kind("NetworkPolicy"),
        "kind": "NetworkPolicy",
        "metadata": metadata(name, namespace, labels),
        "spec": spec,
    }


def resource_quota(name: str, namespace: str, labels: Mapping[str, str], hard: Mapping[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": metadata(name, namespace, labels),
        "spec": {"hard": dict(hard)},
    }


def limit_range(
    name: str,
    namespace: str,
    labels: Mapping[str, str],
    default: Mapping[str, str],
    default_request: Mapping[str, str],
) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "LimitRange",
        "metadata": metadata(name, namespace, labels),
        "spec": {"limits": [{
            "type": "Container",
            "default": dict(default),
            "defaultRequest": dict(default_request),
        }]},
    }


def ingress(
    name: str,
    namespace: str,
    labels: Mapping[str, str],
    *,
    class_name: str,
    host: str,
    paths: list[tuple[str, str, int]],
    tls_secret: str | None = None,
    annotations: Mapping[str, str] | None = None,
) -> dict:
    """Ingress routing ``(path, service, port)`` triples on one host."""
    spec: dict[str, Any] = {"ingressClassName": class_name}
    if tls_secret:
        spec["tls"] = [{"hosts": [host], "secretName": tls_secret}]
    spec["rules"] = [{
        "host": host,
        "http": {"paths": [
            {
                "path": path,
                "pathType": "Prefix",
                "backend": {"service": {"name": svc, "port": {"number": port}}},
            }
            for path, svc, port in paths
        ]},
    }]
    return {
        "apiVersion": api_version_for_kind("Ingress"),
        "kind": "Ingress",
        "metadata": metadata(name, namespace, labels, annotations),
        "spec": spec,
    }
