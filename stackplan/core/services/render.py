"""
Render — turn a Topology into YAML files.

This is the only place deferred secrets are unwrapped: each SecretRef
in a manifest is revealed through the given ``SecretResolver`` while
the file content is produced. Summaries never reveal anything.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from stackplan.core.models.resources import GeneratedFile
from stackplan.core.models.secrets import DeferredSecret, LiteralSecret
from stackplan.core.models.topology import Topology
from stackplan.core.services.secrets import SecretResolver

logger = logging.getLogger(__name__)


def _reveal(value: Any, resolver: SecretResolver) -> Any:
    """Deep-copy ``value`` with every SecretRef replaced by plaintext."""
    if isinstance(value, (LiteralSecret, DeferredSecret)):
        return value.reveal(resolver)
    if isinstance(value, dict):
        return {k: _reveal(v, resolver) for k, v in value.items()}
    if isinstance(value, list):
        return [_reveal(v, resolver) for v in value]
    return value


def _dump(documents: list[dict[str, Any]]) -> str:
    return yaml.safe_dump_all(documents, sort_keys=False, default_flow_style=False)


def render_topology(
    topology: Topology,
    resolver: SecretResolver | None = None,
) -> list[GeneratedFile]:
    """Render one multi-document YAML file per role.

    Raises:
        SecretResolutionError: A deferred secret could not be resolved.
    """
    resolver = resolver or SecretResolver()
    ns = topology.namespace
    files: list[GeneratedFile] = [
        GeneratedFile(
            path=f"{ns}/00-namespace.yaml",
            content=_dump([topology.namespace_manifest]),
            reason=f"Namespace {ns}",
        ),
    ]

    for index, (role, component) in enumerate(topology.components.items(), start=1):
        manifests = component.manifests()
        if not manifests:
            continue
        engine = f" ({component.engine})" if component.engine else ""
        files.append(GeneratedFile(
            path=f"{ns}/{index:02d}-{role}.yaml",
            content=_dump(_reveal(manifests, resolver)),
            reason=f"{role}{engine}: {len(manifests)} manifest(s)",
        ))

    if topology.policies:
        files.append(GeneratedFile(
            path=f"{ns}/90-policies.yaml",
            content=_dump(topology.policies),
            reason=f"Policy objects ({len(topology.policies)})",
        ))

    if topology.gitops_release is not None:
        release = topology.gitops_release
        files.append(GeneratedFile(
            path="argocd/helm-release.yaml",
            content=_dump([_reveal(release, resolver)]),
            reason=f"Helm release {release['chart']} {release['version']}",
        ))

    logger.info("Rendered %d file(s) for %s", len(files), ns)
    return files


def write_files(files: list[GeneratedFile], output_dir: Path) -> list[Path]:
    """Write rendered files under ``output_dir``; returns written paths."""
    written = []
    for f in files:
        target = output_dir / f.path
        if target.exists() and not f.overwrite:
            logger.debug("Skipping existing %s", target)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f.content, encoding="utf-8")
        written.append(target)
    return written


def summary_lines(topology: Topology) -> list[str]:
    """Human-readable deployment summary. Contains no secret values."""
    s = topology.summary
    lines = [
        f"Environment: {s.classification}",
        f"Namespace:   {s.namespace}",
        "",
        "In-cluster:",
    ]
    for role, engine in s.in_cluster.items():
        address = topology.outputs.get(role, "")
        lines.append(f"  {role:<14} {engine:<28} {address}")
    lines += ["", "External:"]
    if not s.external:
        lines.append("  (none)")
    for role, engine in s.external.items():
        lines.append(f"  {role:<14} {engine:<28} {topology.outputs.get(role, '')}")

    flags = topology.config.features
    enabled = [name for name, on in flags.model_dump().items() if on]
    lines += ["", f"Features: {', '.join(enabled) if enabled else '(none)'}"]
    return lines


def describe_topology(topology: Topology, files: list[GeneratedFile] | None = None) -> dict[str, Any]:
    """JSON-safe description (outputs, summary, file list). No secrets."""
    result: dict[str, Any] = {
        "classification": topology.summary.classification.value,
        "namespace": topology.namespace,
        "engines": topology.config.engines.model_dump(),
        "features": topology.config.features.model_dump(),
        "outputs": dict(topology.outputs),
        "summary": {
            "in_cluster": dict(topology.summary.in_cluster),
            "external": dict(topology.summary.external),
        },
    }
    if files is not None:
        result["files"] = [{"path": f.path, "reason": f.reason} for f in files]
    return result
