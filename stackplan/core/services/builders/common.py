"""
Shared pieces for backend builders.

Every builder follows the same shape:

    1. ``require_engine`` — refuse engines it does not serve
    2. credential secret (published even when the backend is external)
    3. if disabled → ``external_set`` with only the secret
    4. otherwise workload + service (+ headless service)
"""

from __future__ import annotations

from typing import Any

from stackplan.core.errors import BuilderInvariantError
from stackplan.core.models.config import BackendConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s

EXPORTER_RESOURCES = ("50m", "32Mi", "100m", "64Mi")


def require_engine(config: BackendConfig, accepted: tuple[str, ...], builder: str) -> None:
    """Fail loudly when a builder is handed a config for another engine."""
    if config.engine not in accepted:
        raise BuilderInvariantError(
            f"{builder} builder cannot build {config.capability} engine "
            f"'{config.engine}' (serves: {', '.join(accepted)})"
        )


def external_set(
    config: BackendConfig,
    secret: dict[str, Any] | None = None,
    credential_keys: dict[str, str] | None = None,
) -> ResourceSet:
    """Externally managed backend: no workload, no service, maybe a secret."""
    return ResourceSet(
        role=config.capability.value,
        engine=config.engine,
        secret=secret,
        secret_name=secret["metadata"]["name"] if secret else None,
        credential_keys=credential_keys if secret else {},
        endpoint=config.address,
    )


def exporter(
    name: str,
    image: str,
    port: int,
    env: list[dict] | None = None,
    args: list[str] | None = None,
) -> dict[str, Any]:
    """Metrics sidecar bound to its own port."""
    cpu_req, mem_req, cpu_lim, mem_lim = EXPORTER_RESOURCES
    container: dict[str, Any] = {
        "name": name,
        "image": image,
        "imagePullPolicy": "IfNotPresent",
        "ports": [k8s.container_port("metrics", port)],
    }
    if args:
        container["args"] = args
    if env:
        container["env"] = env
    container["resources"] = k8s.resource_requirements(cpu_req, mem_req, cpu_lim, mem_lim)
    container["securityContext"] = {
        **k8s.container_security_context(read_only_root=True),
        "runAsNonRoot": True,
        "runAsUser": 65534,
    }
    return container


def in_cluster_endpoint(service_name: str, port: int) -> str:
    return f"{service_name}:{port}"
