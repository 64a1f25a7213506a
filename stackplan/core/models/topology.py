"""
Topology model — the result of one composition pass.
"""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, Field

from stackplan.core.errors import BuilderInvariantError
from stackplan.core.models.config import ResolvedConfig
from stackplan.core.models.environment import Classification
from stackplan.core.models.resources import ResourceSet


class NamedOutputs:
    """Write-once map of logical role → resource reference.

    Each key is written by exactly one component. A second write to the
    same key means two components claimed one role, which is a defect
    in composition, so it raises instead of overwriting.
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def publish(self, key: str, value: str) -> None:
        if key in self._values:
            raise BuilderInvariantError(
                f"Named output '{key}' already published "
                f"(existing: {self._values[key]!r}, new: {value!r})"
            )
        self._values[key] = value

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key, default)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


class CompositionSummary(BaseModel):
    """Which roles run in-cluster and which are externally managed."""

    classification: Classification
    namespace: str
    in_cluster: dict[str, str] = Field(default_factory=dict)   # role → engine
    external: dict[str, str] = Field(default_factory=dict)     # role → engine


class Topology(BaseModel):
    """A complete desired resource graph for one environment."""

    config: ResolvedConfig
    namespace_manifest: dict[str, Any]
    components: dict[str, ResourceSet] = Field(default_factory=dict)
    policies: list[dict[str, Any]] = Field(default_factory=list)
    gitops_release: dict[str, Any] | None = None
    outputs: dict[str, str] = Field(default_factory=dict)
    summary: CompositionSummary

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def manifests(self) -> list[dict[str, Any]]:
        """Every manifest in apply order: namespace, components, policies."""
        result = [self.namespace_manifest]
        for component in self.components.values():
            result.extend(component.manifests())
        result.extend(self.policies)
        return result
