"""
Resource models — what a builder returns and what a renderer writes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ResourceSet(BaseModel):
    """The manifests one component contributes to the topology.

    Backend builders fill at most the four named slots. Fixed-role
    components (runtime tier, ingress, gitops) may add ``extras`` such
    as autoscalers, disruption budgets, or ingresses.

    Attributes:
        role:             Logical role (database, cache, web, ...).
        engine:           Engine identifier, or None for fixed roles.
        workload:         Deployment or StatefulSet manifest.
        service:          ClusterIP service manifest.
        headless_service: Headless service manifest (StatefulSet DNS).
        secret:           Credential secret manifest (values are SecretRefs).
        extras:           Additional manifests owned by this component.
        endpoint:         In-cluster address published for this role.
        secret_name:      Name of the credential secret, if any.
        credential_keys:  Purpose → key inside the credential secret
                          (e.g. ``password`` → ``postgres-password``).
    """

    role: str
    engine: str | None = None
    workload: dict[str, Any] | None = None
    service: dict[str, Any] | None = None
    headless_service: dict[str, Any] | None = None
    secret: dict[str, Any] | None = None
    extras: list[dict[str, Any]] = Field(default_factory=list)
    endpoint: str | None = None
    secret_name: str | None = None
    credential_keys: dict[str, str] = Field(default_factory=dict)

    @property
    def materialized(self) -> bool:
        """Whether this component runs a workload inside the cluster."""
        return self.workload is not None

    @property
    def is_empty(self) -> bool:
        return not self.manifests()

    def manifests(self) -> list[dict[str, Any]]:
        """All manifests in apply order (secret first, workload last)."""
        ordered = [self.secret, self.headless_service, self.service, self.workload]
        return [m for m in ordered if m is not None] + list(self.extras)


class GeneratedFile(BaseModel):
    """A file produced by the render phase.

    Attributes:
        path:      Relative path from the output directory.
        content:   Full file content.
        overwrite: Whether to overwrite if already exists.
        reason:    Why this file was generated.
    """

    path: str
    content: str
    overwrite: bool = True
    reason: str = ""
