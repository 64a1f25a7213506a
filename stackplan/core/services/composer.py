"""
Topology composer — the single entry point.

One linear pass:

    1. resolve configuration, classification and namespace
    2. for each capability, run only the builder for the selected engine
    3. build fixed roles (mail, runtime tier, ingress, observability, gitops)
    4. collect named outputs and the in-cluster / external summary

Any error aborts the whole pass; no partial topology is returned.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from stackplan.core.config.resolver import resolve
from stackplan.core.config.store import ConfigStore
from stackplan.core.models.config import ResolvedConfig
from stackplan.core.models.engines import SERVICE_NAMES, Capability
from stackplan.core.models.environment import Classification
from stackplan.core.models.resources import ResourceSet
from stackplan.core.models.topology import CompositionSummary, NamedOutputs, Topology
from stackplan.core.services import builders
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders import mailpit
from stackplan.core.services.gitops import build_gitops
from stackplan.core.services.ingress import build_ingress
from stackplan.core.services.labels import Identity
from stackplan.core.services.observability import build_observability
from stackplan.core.services.policies import build_policies, namespace_labels
from stackplan.core.services.runtime import REDIS_FAMILY, build_runtime

logger = logging.getLogger(__name__)

BACKEND_ORDER = (
    Capability.DATABASE,
    Capability.CACHE,
    Capability.QUEUE,
    Capability.STORAGE,
    Capability.SEARCH,
)


def _publish(outputs: NamedOutputs, role: str, resources: ResourceSet) -> None:
    """Publish a component's address and credential references."""
    if resources.endpoint:
        outputs.publish(role, resources.endpoint)
    if resources.secret_name:
        outputs.publish(f"{role}.secret", resources.secret_name)
        for purpose, key in resources.credential_keys.items():
            outputs.publish(f"{role}.secret.{purpose}", key)


def _shares_cache(config: ResolvedConfig) -> bool:
    """queue=redis reuses a redis-family cache instead of a second instance."""
    return config.engines.queue == "redis" and config.engines.cache in REDIS_FAMILY


def _backend_identity(config: ResolvedConfig, capability: Capability) -> Identity:
    backend = config.backend(capability)
    return Identity(
        name=SERVICE_NAMES.get(backend.engine, backend.engine),
        component=capability.value,
        environment=config.classification.value,
        version=backend.version,
    )


def compose_config(config: ResolvedConfig) -> Topology:
    """Compose a topology from an already-resolved configuration."""
    ns = config.namespace
    outputs = NamedOutputs()
    components: dict[str, ResourceSet] = {}
    summary = CompositionSummary(classification=config.classification, namespace=ns)

    def record(role: str, resources: ResourceSet, engine: str | None = None) -> None:
        components[role] = resources
        _publish(outputs, role, resources)
        engine = engine or resources.engine or "laravel"
        if resources.materialized:
            summary.in_cluster[role] = engine
            logger.info("Composed %s (%s) in-cluster", role, engine)

    # ── Backends: one builder per capability ────────────────────
    for capability in BACKEND_ORDER:
        role = capability.value
        backend = config.backend(capability)

        if capability is Capability.QUEUE and _shares_cache(config):
            cache = components["cache"]
            shared = ResourceSet(
                role=role,
                engine=backend.engine,
                endpoint=cache.endpoint,
                secret_name=cache.secret_name,
                credential_keys=cache.credential_keys,
            )
            components[role] = shared
            _publish(outputs, role, shared)
            target = summary.in_cluster if cache.materialized else summary.external
            target[role] = f"{backend.engine} (shared with cache)"
            logger.info("Queue shares the %s cache instance", config.engines.cache)
            continue

        resources = builders.build(backend, _backend_identity(config, capability), ns)
        record(role, resources)
        if not resources.materialized:
            summary.external[role] = backend.engine
            logger.info("%s (%s) is externally managed at %s", role, backend.engine, backend.address)

    # ── Fixed roles ─────────────────────────────────────────────
    mail_identity = Identity(
        name=mailpit.NAME, component=mailpit.ROLE,
        environment=config.classification.value, version=config.mail.version,
    )
    mail = mailpit.build(config.mail, mail_identity, ns)
    if mail.materialized:
        record(mailpit.ROLE, mail)

    for role, tier in build_runtime(config, outputs, ns).items():
        record(role, tier)

    ingress = build_ingress(config, outputs, ns)
    if not ingress.is_empty:
        record("ingress", ingress)

    for role, tool in build_observability(config, ns).items():
        record(role, tool)

    gitops, release = build_gitops(config)
    if release is not None:
        record("gitops", gitops)
        summary.in_cluster["gitops"] = "argocd"

    topology = Topology(
        config=config,
        namespace_manifest=k8s.namespace(ns, namespace_labels(config)),
        components=components,
        policies=build_policies(config),
        gitops_release=release,
        outputs=outputs.as_dict(),
        summary=summary,
    )
    logger.info(
        "Composed %s topology: %d in-cluster, %d external, %d manifests",
        config.classification, len(summary.in_cluster), len(summary.external),
        len(topology.manifests()),
    )
    return topology


def compose(
    environment: str | Classification,
    overrides: ConfigStore | Mapping[str, Any] | None = None,
) -> Topology:
    """Resolve configuration and compose the full topology.

    Raises:
        ConfigError: Invalid or missing configuration (before any resource
            is described).
        BuilderInvariantError: A builder was dispatched for the wrong engine.
    """
    return compose_config(resolve(environment, overrides))
