"""
Ingress — external HTTP(S) entry to the web and Reverb tiers.
"""

from __future__ import annotations

from stackplan.core.models.config import ResolvedConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.models.topology import NamedOutputs
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.labels import labels

NAME = "laravel-ingress"
REVERB_PATH = "/app"


def _target(outputs: NamedOutputs, role: str) -> tuple[str, int] | None:
    address = outputs.get(role)
    if not address:
        return None
    host, _, port = address.rpartition(":")
    return host, int(port)


def build_ingress(config: ResolvedConfig, outputs: NamedOutputs, namespace: str) -> ResourceSet:
    """Route ``/`` to the web service and the websocket path to Reverb."""
    ing = config.ingress
    if not ing.enabled:
        return ResourceSet(role="ingress")

    paths = []
    reverb = _target(outputs, "reverb")
    if reverb:
        paths.append((REVERB_PATH, *reverb))
    web = _target(outputs, "web")
    if web:
        paths.append(("/", *web))

    manifest = k8s.ingress(
        NAME, namespace,
        labels("laravel", "ingress", config.classification.value, config.app.version),
        class_name=ing.class_name,
        host=ing.host,
        paths=paths,
        tls_secret=ing.tls_secret_name if ing.tls else None,
        annotations=ing.annotations,
    )
    scheme = "https" if ing.tls and ing.tls_secret_name else "http"
    return ResourceSet(role="ingress", extras=[manifest], endpoint=f"{scheme}://{ing.host}")
