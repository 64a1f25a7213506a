"""
Mailpit — SMTP catcher with a web UI for non-production environments.
"""

from __future__ import annotations

from stackplan.core.models.config import MailConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.builders.common import in_cluster_endpoint
from stackplan.core.services.labels import Identity, scrape_annotations

NAME = "mailpit"
ROLE = "mail"
MAILPIT_UID = 1000


def build(config: MailConfig, identity: Identity, namespace: str) -> ResourceSet:
    if not config.enabled:
        return ResourceSet(role=ROLE, engine=NAME)

    info = {"type": "http", "path": "/api/v1/info", "port": config.ui_port}
    server = {
        "name": NAME,
        "image": f"axllent/mailpit:{config.version}",
        "imagePullPolicy": "IfNotPresent",
        "ports": [
            k8s.container_port("smtp", config.smtp_port),
            k8s.container_port("http", config.ui_port),
        ],
        "env": [
            k8s.env_var("MP_SMTP_BIND_ADDR", f"0.0.0.0:{config.smtp_port}"),
            k8s.env_var("MP_UI_BIND_ADDR", f"0.0.0.0:{config.ui_port}"),
            k8s.env_var("MP_MAX_MESSAGES", 500),
            k8s.env_var("MP_DATABASE", "/data/mailpit.db"),
        ],
        "resources": k8s.resource_requirements("50m", "64Mi", "250m", "128Mi"),
        "livenessProbe": k8s.liveness_probe(**info),
        "readinessProbe": k8s.readiness_probe(**info),
        "securityContext": {
            **k8s.container_security_context(),
            "runAsNonRoot": True,
            "runAsUser": MAILPIT_UID,
        },
        "volumeMounts": [k8s.volume_mount("data", "/data")],
    }
    template = k8s.pod_template(
        identity,
        [server],
        annotations=scrape_annotations(config.ui_port),
        volumes=[k8s.empty_dir("data")],
        security_context=k8s.pod_security_context(MAILPIT_UID, MAILPIT_UID),
    )
    return ResourceSet(
        role=ROLE,
        engine=NAME,
        workload=k8s.deployment(NAME, namespace, identity, template, replicas=1),
        service=k8s.service(NAME, namespace, identity, [
            k8s.service_port("smtp", config.smtp_port),
            k8s.service_port("http", config.ui_port),
        ]),
        endpoint=in_cluster_endpoint(NAME, config.smtp_port),
    )
