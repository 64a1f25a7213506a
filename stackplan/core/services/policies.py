"""
Namespace policy objects driven by feature gates.

    network_isolation  → default-deny + intra-namespace + ingress-controller allow
    resource_quotas    → ResourceQuota + LimitRange
    pod_security       → pod-security.kubernetes.io labels on the namespace
"""

from __future__ import annotations

from typing import Mapping

from stackplan.core.models.config import ResolvedConfig
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.labels import COMPONENT_LABEL, labels

POD_SECURITY_LEVEL = "restricted"
INGRESS_NAMESPACE = "ingress-nginx"

# Quota per classification: (requests.cpu, requests.memory, limits.cpu, limits.memory, pods)
QUOTAS: dict[str, tuple[str, str, str, str, str]] = {
    "local": ("4", "8Gi", "8", "16Gi", "50"),
    "staging": ("8", "16Gi", "16", "32Gi", "100"),
    "production": ("32", "64Gi", "64", "128Gi", "300"),
}


def _policy_labels(config: ResolvedConfig) -> dict[str, str]:
    return labels("laravel", "policy", config.classification.value, config.app.version)


def namespace_labels(config: ResolvedConfig) -> dict[str, str]:
    """Namespace labels, including pod-security enforcement when gated on."""
    ns_labels = labels("laravel", "namespace", config.classification.value, config.app.version)
    if config.features.pod_security:
        for mode in ("enforce", "audit", "warn"):
            ns_labels[f"pod-security.kubernetes.io/{mode}"] = POD_SECURITY_LEVEL
    return ns_labels


def network_policies(config: ResolvedConfig) -> list[dict]:
    ns = config.namespace
    meta = _policy_labels(config)
    return [
        k8s.network_policy("default-deny-ingress", ns, meta, ingress=[]),
        k8s.network_policy(
            "allow-same-namespace", ns, meta,
            ingress=[{"from": [{"podSelector": {}}]}],
        ),
        *[
            k8s.network_policy(
                f"allow-ingress-controller-{component}", ns, meta,
                pod_selector={COMPONENT_LABEL: component},
                ingress=[{
                    "from": [{"namespaceSelector": {"matchLabels": {
                        "kubernetes.io/metadata.name": INGRESS_NAMESPACE,
                    }}}],
                }],
            )
            for component in ("web", "reverb")
        ],
    ]


def quota_objects(config: ResolvedConfig) -> list[dict]:
    ns = config.namespace
    meta = _policy_labels(config)
    cpu_req, mem_req, cpu_lim, mem_lim, pods = QUOTAS[config.classification.value]
    hard: Mapping[str, str] = {
        "requests.cpu": cpu_req,
        "requests.memory": mem_req,
        "limits.cpu": cpu_lim,
        "limits.memory": mem_lim,
        "pods": pods,
        "persistentvolumeclaims": "20",
    }
    return [
        k8s.resource_quota("laravel-quota", ns, meta, hard),
        k8s.limit_range(
            "laravel-limits", ns, meta,
            default={"cpu": "500m", "memory": "512Mi"},
            default_request={"cpu": "100m", "memory": "128Mi"},
        ),
    ]


def build_policies(config: ResolvedConfig) -> list[dict]:
    """Every gated policy object for the namespace, in apply order."""
    objects: list[dict] = []
    if config.features.resource_quotas:
        objects += quota_objects(config)
    if config.features.network_isolation:
        objects += network_policies(config)
    return objects
