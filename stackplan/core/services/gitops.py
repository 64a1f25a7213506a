"""
GitOps — ArgoCD namespace, Helm release description, optional Ingress.

The release is described, not installed: the apply layer hands the
description to Helm.
"""

from __future__ import annotations

from typing import Any

from stackplan.core.models.config import GitOpsConfig, ResolvedConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.labels import labels

NAMESPACE = "argocd"
CHART = "argo-cd"
CHART_REPO = "https://argoproj.github.io/argo-helm"
SERVER_SERVICE = "argocd-server"

_HTTP_ANNOTATIONS = {
    "nginx.ingress.kubernetes.io/force-ssl-redirect": "false",
    "nginx.ingress.kubernetes.io/backend-protocol": "HTTP",
}


def helm_values(gitops: GitOpsConfig) -> dict[str, Any]:
    """Chart values. The admin password stays a SecretRef until render."""
    values: dict[str, Any] = {
        "global": {"domain": gitops.host},
        "configs": {"params": {"server.insecure": True}},
        "server": {
            "replicas": gitops.replicas,
            "service": {"type": "LoadBalancer"},
            "ingress": {
                "enabled": gitops.enable_ingress,
                "ingressClassName": gitops.ingress_class_name,
                "hosts": [gitops.host],
                "tls": False,
                "annotations": dict(_HTTP_ANNOTATIONS),
            },
            "extraArgs": ["--insecure"],
        },
        "controller": {"replicas": 1},
        "repoServer": {"replicas": gitops.replicas},
        "applicationSet": {"replicas": gitops.replicas},
        "redis": {"enabled": True},
        "dex": {"enabled": gitops.enable_sso},
        "notifications": {"enabled": True},
    }
    if gitops.admin_password is not None:
        values["configs"]["secret"] = {"argocdServerAdminPassword": gitops.admin_password}
    return values


def helm_release(gitops: GitOpsConfig) -> dict[str, Any]:
    return {
        "name": "argocd",
        "chart": CHART,
        "version": gitops.chart_version,
        "namespace": NAMESPACE,
        "repository": CHART_REPO,
        "values": helm_values(gitops),
        "timeout": 600,
        "cleanupOnFail": True,
    }


def build_gitops(config: ResolvedConfig) -> tuple[ResourceSet, dict[str, Any] | None]:
    """Return the ArgoCD resource set and Helm release (None when disabled)."""
    gitops = config.gitops
    if not gitops.enabled:
        return ResourceSet(role="gitops"), None

    gitops_labels = labels("argocd", "gitops", config.classification.value, gitops.chart_version)
    extras = [k8s.namespace(NAMESPACE, gitops_labels)]
    if not gitops.enable_ingress:
        extras.append(k8s.ingress(
            SERVER_SERVICE, NAMESPACE, gitops_labels,
            class_name=gitops.ingress_class_name,
            host=gitops.host,
            paths=[("/", SERVER_SERVICE, 80)],
            annotations=_HTTP_ANNOTATIONS,
        ))
    resources = ResourceSet(
        role="gitops",
        engine="argocd",
        extras=extras,
        endpoint=f"http://{gitops.host}",
    )
    return resources, helm_release(gitops)
