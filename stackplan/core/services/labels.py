"""
Identity labels, selector labels and annotations.

``labels()`` is the full metadata map attached to every resource;
``selector()`` is the immutable subset used in ``matchLabels``. The
selector never carries environment or version, so pods stay matched
across version bumps. Annotations are generated separately and are
never used for selection.
"""

from __future__ import annotations

from typing import Mapping

from pydantic import BaseModel, ConfigDict

PART_OF = "laravel-stack"
MANAGED_BY = "stackplan"

NAME_LABEL = "app.kubernetes.io/name"
COMPONENT_LABEL = "app.kubernetes.io/component"
PART_OF_LABEL = "app.kubernetes.io/part-of"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
VERSION_LABEL = "app.kubernetes.io/version"
ENVIRONMENT_LABEL = "environment"

MANAGED_ANNOTATION = "stackplan.io/managed"

SELECTOR_KEYS = (NAME_LABEL, COMPONENT_LABEL)


def labels(
    name: str,
    component: str,
    environment: str,
    version: str = "latest",
) -> dict[str, str]:
    """Full identity label set. Pure: same inputs, same map."""
    return {
        NAME_LABEL: name,
        COMPONENT_LABEL: component,
        PART_OF_LABEL: PART_OF,
        MANAGED_BY_LABEL: MANAGED_BY,
        VERSION_LABEL: str(version),
        ENVIRONMENT_LABEL: str(environment),
    }


def selector(name: str, component: str) -> dict[str, str]:
    """Selector label set: name + component only."""
    return {NAME_LABEL: name, COMPONENT_LABEL: component}


def merge_labels(base: Mapping[str, str], extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Add extra labels without letting them replace selector keys."""
    merged = dict(base)
    for key, value in (extra or {}).items():
        if key in SELECTOR_KEYS:
            continue
        merged[key] = value
    return merged


def managed_annotations(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    annotations = {MANAGED_ANNOTATION: "true"}
    annotations.update(extra or {})
    return annotations


def scrape_annotations(port: int, path: str = "/metrics") -> dict[str, str]:
    """Prometheus scrape annotations for a metrics port."""
    return {
        "prometheus.io/scrape": "true",
        "prometheus.io/port": str(port),
        "prometheus.io/path": path,
    }


class Identity(BaseModel):
    """Who a resource set belongs to: name, role, environment, version."""

    model_config = ConfigDict(frozen=True)

    name: str
    component: str
    environment: str
    version: str = "latest"

    @property
    def labels(self) -> dict[str, str]:
        return labels(self.name, self.component, self.environment, self.version)

    @property
    def selector(self) -> dict[str, str]:
        return selector(self.name, self.component)
