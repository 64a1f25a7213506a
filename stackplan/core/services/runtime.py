"""
Runtime tier — Laravel web (Octane), queue worker, and Reverb.

The tier never hard-codes backend coordinates: every host, port and
credential reference is read from the Named Output map the backend
builders published. Whatever engines were selected, the tier wires
itself to them through the same keys.
"""

from __future__ import annotations

import logging
from typing import Any

from stackplan.core.models.config import ResolvedConfig, TierConfig
from stackplan.core.models.resources import ResourceSet
from stackplan.core.models.topology import NamedOutputs
from stackplan.core.services import k8s_objects as k8s
from stackplan.core.services.labels import Identity, scrape_annotations
from stackplan.core.services.secrets import build_secret, secret_env

logger = logging.getLogger(__name__)

APP_NAME = "laravel"
APP_SECRET = "laravel-app"
WEB_PORT = 8000
WEB_SERVICE_PORT = 80
REVERB_PORT = 8080
APP_ROOT = "/var/www/html"
APP_UID = 1000

DB_CONNECTIONS = {"postgresql": "pgsql", "mysql": "mysql", "mariadb": "mariadb"}
REDIS_FAMILY = ("redis", "valkey")


# ═══════════════════════════════════════════════════════════════════
#  Environment wiring
# ═══════════════════════════════════════════════════════════════════


def _split(address: str) -> tuple[str, str]:
    host, _, port = address.rpartition(":")
    return host, port


def _credential(outputs: NamedOutputs, role: str, purpose: str, env_name: str) -> list[dict]:
    """secretKeyRef env entry for a published credential, if one exists."""
    secret = outputs.get(f"{role}.secret")
    key = outputs.get(f"{role}.secret.{purpose}")
    if not secret or not key:
        return []
    return [secret_env(env_name, secret, key)]


def _database_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict]:
    host, port = _split(outputs["database"])
    db = config.database
    return [
        k8s.env_var("DB_CONNECTION", DB_CONNECTIONS[db.engine]),
        k8s.env_var("DB_HOST", host),
        k8s.env_var("DB_PORT", port),
        k8s.env_var("DB_DATABASE", db.database),
        k8s.env_var("DB_USERNAME", db.username or ""),
        *_credential(outputs, "database", "password", "DB_PASSWORD"),
    ]


def _redis_env(outputs: NamedOutputs, role: str) -> list[dict]:
    host, port = _split(outputs[role])
    return [
        k8s.env_var("REDIS_HOST", host),
        k8s.env_var("REDIS_PORT", port),
        *_credential(outputs, role, "password", "REDIS_PASSWORD"),
    ]


def _cache_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict]:
    engine = config.cache.engine
    if engine in REDIS_FAMILY:
        return [k8s.env_var("CACHE_STORE", "redis"), *_redis_env(outputs, "cache")]
    host, port = _split(outputs["cache"])
    return [
        k8s.env_var("CACHE_STORE", "memcached"),
        k8s.env_var("MEMCACHED_HOST", host),
        k8s.env_var("MEMCACHED_PORT", port),
    ]


def _queue_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict]:
    queue = config.queue
    env = [k8s.env_var("QUEUE_CONNECTION", queue.engine)]
    if queue.engine == "redis":
        # A shared redis-family cache already exported REDIS_*.
        if config.cache.engine not in REDIS_FAMILY:
            env += _redis_env(outputs, "queue")
        env.append(k8s.env_var("REDIS_QUEUE", queue.queue_name))
        return env
    if queue.engine == "sqs":
        return env + [
            k8s.env_var("SQS_PREFIX", queue.prefix or ""),
            k8s.env_var("SQS_QUEUE", queue.queue_name),
            k8s.env_var("AWS_DEFAULT_REGION", queue.region or ""),
        ]

    host, port = _split(outputs["queue"])
    if queue.engine == "rabbitmq":
        return env + [
            k8s.env_var("RABBITMQ_HOST", host),
            k8s.env_var("RABBITMQ_PORT", port),
            *_credential(outputs, "queue", "username", "RABBITMQ_USER"),
            *_credential(outputs, "queue", "password", "RABBITMQ_PASSWORD"),
            k8s.env_var("RABBITMQ_QUEUE", queue.queue_name),
        ]
    if queue.engine == "kafka":
        if queue.sasl_mechanism:
            env = env + [
                k8s.env_var(
                    "KAFKA_SECURITY_PROTOCOL", "SASL_SSL" if queue.tls else "SASL_PLAINTEXT",
                ),
                k8s.env_var("KAFKA_SASL_MECHANISM", queue.sasl_mechanism),
            ]
        return env + [
            k8s.env_var("KAFKA_BROKERS", outputs["queue"]),
            k8s.env_var("KAFKA_QUEUE", queue.queue_name),
            *_credential(outputs, "queue", "username", "KAFKA_SASL_USERNAME"),
            *_credential(outputs, "queue", "password", "KAFKA_SASL_PASSWORD"),
        ]
    return env + [
        k8s.env_var("BEANSTALKD_QUEUE_HOST", host),
        k8s.env_var("BEANSTALKD_QUEUE_PORT", port),
        k8s.env_var("BEANSTALKD_QUEUE", queue.queue_name),
    ]


def _storage_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict]:
    storage = config.storage
    env = [
        k8s.env_var("FILESYSTEM_DISK", "s3"),
        k8s.env_var("AWS_BUCKET", storage.bucket),
        k8s.env_var("AWS_DEFAULT_REGION", storage.region or "us-east-1"),
        *_credential(outputs, "storage", "access_key", "AWS_ACCESS_KEY_ID"),
        *_credential(outputs, "storage", "secret_key", "AWS_SECRET_ACCESS_KEY"),
    ]
    if storage.engine == "minio":
        env += [
            k8s.env_var("AWS_ENDPOINT", f"http://{outputs['storage']}"),
            k8s.env_var("AWS_USE_PATH_STYLE_ENDPOINT", "true"),
        ]
    elif storage.endpoint:
        env.append(k8s.env_var("AWS_ENDPOINT", storage.endpoint))
    return env


def _search_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict]:
    search = config.search
    scheme = "https" if search.tls else "http"
    if search.engine == "meilisearch":
        return [
            k8s.env_var("SCOUT_DRIVER", "meilisearch"),
            k8s.env_var("MEILISEARCH_HOST", f"{scheme}://{outputs['search']}"),
            *_credential(outputs, "search", "master_key", "MEILISEARCH_KEY"),
        ]
    return [
        k8s.env_var("SCOUT_DRIVER", "elasticsearch"),
        k8s.env_var("ELASTICSEARCH_HOST", f"{scheme}://{outputs['search']}"),
        *_credential(outputs, "search", "username", "ELASTICSEARCH_USERNAME"),
        *_credential(outputs, "search", "password", "ELASTICSEARCH_PASSWORD"),
    ]


def _mail_env(outputs: NamedOutputs) -> list[dict]:
    if "mail" not in outputs:
        return [k8s.env_var("MAIL_MAILER", "log")]
    host, port = _split(outputs["mail"])
    return [
        k8s.env_var("MAIL_MAILER", "smtp"),
        k8s.env_var("MAIL_HOST", host),
        k8s.env_var("MAIL_PORT", port),
    ]


def laravel_env(config: ResolvedConfig, outputs: NamedOutputs) -> list[dict[str, Any]]:
    """Container environment shared by every runtime tier."""
    app = config.app
    session = "redis" if config.cache.engine in REDIS_FAMILY else "database"
    env = [
        k8s.env_var("APP_NAME", app.name),
        k8s.env_var("APP_ENV", app.environment),
        k8s.env_var("APP_DEBUG", str(app.debug).lower()),
        k8s.env_var("APP_URL", app.url),
        secret_env("APP_KEY", APP_SECRET, "app-key"),
        k8s.env_var("LOG_CHANNEL", "stderr"),
        k8s.env_var("SESSION_DRIVER", session),
        k8s.env_var("BROADCAST_CONNECTION", "reverb"),
        k8s.env_var("REVERB_APP_ID", app.reverb_app_id),
        k8s.env_var("REVERB_APP_KEY", app.reverb_app_key),
        secret_env("REVERB_APP_SECRET", APP_SECRET, "reverb-app-secret"),
        k8s.env_var("REVERB_HOST", f"{APP_NAME}-reverb"),
        k8s.env_var("REVERB_PORT", REVERB_PORT),
        k8s.env_var("REVERB_SCHEME", "http"),
    ]
    env += _database_env(config, outputs)
    env += _cache_env(config, outputs)
    env += _queue_env(config, outputs)
    env += _storage_env(config, outputs)
    env += _search_env(config, outputs)
    env += _mail_env(outputs)
    return env


# ═══════════════════════════════════════════════════════════════════
#  Tier workloads
# ═══════════════════════════════════════════════════════════════════


def _scaling_extras(
    name: str,
    namespace: str,
    identity: Identity,
    tier: TierConfig,
    config: ResolvedConfig,
) -> list[dict]:
    extras = []
    if config.features.autoscaling:
        extras.append(k8s.autoscaler(
            name, namespace, identity,
            target_kind="Deployment",
            min_replicas=tier.min_replicas,
            max_replicas=tier.max_replicas,
        ))
    if config.features.disruption_budget:
        extras.append(k8s.disruption_budget(name, namespace, identity, tier.replicas))
    return extras


def _container(
    name: str,
    config: ResolvedConfig,
    tier: TierConfig,
    env: list[dict],
    **extra: Any,
) -> dict[str, Any]:
    app = config.app
    container: dict[str, Any] = {
        "name": name,
        "image": f"{app.image}:{app.version}",
        "imagePullPolicy": "IfNotPresent",
        **extra,
        "env": env,
        "resources": k8s.resource_requirements(
            tier.cpu_request, tier.memory_request, tier.cpu_limit, tier.memory_limit,
        ),
        "securityContext": {
            **k8s.container_security_context(read_only_root=True),
            "runAsNonRoot": True,
            "runAsUser": APP_UID,
        },
        "volumeMounts": [
            k8s.volume_mount("storage", f"{APP_ROOT}/storage"),
            k8s.volume_mount("cache", f"{APP_ROOT}/bootstrap/cache"),
        ],
    }
    return container


def _writable_volumes() -> list[dict]:
    return [k8s.empty_dir("storage"), k8s.empty_dir("cache")]


def _pre_stop(seconds: int) -> dict:
    return {"preStop": {"exec": {"command": ["/bin/sh", "-c", f"sleep {seconds}"]}}}


def build_web(config: ResolvedConfig, outputs: NamedOutputs, namespace: str) -> ResourceSet:
    tier = config.app.web
    name = f"{APP_NAME}-web"
    identity = Identity(
        name=APP_NAME, component="web",
        environment=config.classification.value, version=config.app.version,
    )
    container = _container(
        name, config, tier, laravel_env(config, outputs),
        command=[
            "php", "artisan", "octane:start",
            f"--server={config.app.octane_server}", "--host=0.0.0.0", f"--port={WEB_PORT}",
        ],
        ports=[k8s.container_port("http", WEB_PORT)],
        livenessProbe=k8s.liveness_probe(type="http", path="/health", port=WEB_PORT),
        readinessProbe=k8s.readiness_probe(
            type="http", path="/health", port=WEB_PORT, initialDelaySeconds=10,
        ),
    )
    template = k8s.pod_template(
        identity,
        [container],
        annotations=scrape_annotations(WEB_PORT),
        volumes=_writable_volumes(),
        security_context=k8s.pod_security_context(APP_UID, APP_UID),
        termination_grace=30,
    )
    replicas = None if config.features.autoscaling else tier.replicas
    secret = build_secret(APP_SECRET, namespace, {
        "app-key": config.app.key,
        "reverb-app-secret": config.app.reverb_app_secret,
    }, identity.labels)

    return ResourceSet(
        role="web",
        workload=k8s.deployment(name, namespace, identity, template, replicas=replicas),
        service=k8s.service(
            name, namespace, identity,
            [k8s.service_port("http", WEB_SERVICE_PORT, WEB_PORT)],
        ),
        secret=secret,
        secret_name=APP_SECRET,
        credential_keys={"app_key": "app-key", "reverb_app_secret": "reverb-app-secret"},
        extras=_scaling_extras(name, namespace, identity, tier, config),
        endpoint=f"{name}:{WEB_SERVICE_PORT}",
    )


def build_worker(config: ResolvedConfig, outputs: NamedOutputs, namespace: str) -> ResourceSet:
    tier = config.app.worker
    name = f"{APP_NAME}-worker"
    identity = Identity(
        name=APP_NAME, component="worker",
        environment=config.classification.value, version=config.app.version,
    )
    alive = ["/bin/sh", "-c", "pgrep -f 'queue:work' > /dev/null"]
    container = _container(
        name, config, tier, laravel_env(config, outputs),
        command=[
            "php", "artisan", "queue:work", config.queue.engine,
            f"--queue={config.queue.queue_name}",
            "--sleep=3", "--tries=3", "--max-time=3600",
        ],
        livenessProbe=k8s.liveness_probe(type="exec", command=alive),
        lifecycle=_pre_stop(10),
    )
    template = k8s.pod_template(
        identity,
        [container],
        volumes=_writable_volumes(),
        security_context=k8s.pod_security_context(APP_UID, APP_UID),
        # Long-running jobs get time to finish on shutdown.
        termination_grace=120,
    )
    replicas = None if config.features.autoscaling else tier.replicas
    return ResourceSet(
        role="worker",
        workload=k8s.deployment(name, namespace, identity, template, replicas=replicas),
        extras=_scaling_extras(name, namespace, identity, tier, config),
    )


def build_reverb(config: ResolvedConfig, outputs: NamedOutputs, namespace: str) -> ResourceSet:
    tier = config.app.reverb
    name = f"{APP_NAME}-reverb"
    identity = Identity(
        name=APP_NAME, component="reverb",
        environment=config.classification.value, version=config.app.version,
    )
    env = laravel_env(config, outputs) + [
        k8s.env_var("REVERB_SERVER_HOST", "0.0.0.0"),
        k8s.env_var("REVERB_SERVER_PORT", REVERB_PORT),
    ]
    container = _container(
        name, config, tier, env,
        command=["php", "artisan", "reverb:start", "--host=0.0.0.0", f"--port={REVERB_PORT}"],
        ports=[k8s.container_port("websocket", REVERB_PORT)],
        livenessProbe=k8s.liveness_probe(type="tcp", port=REVERB_PORT),
        readinessProbe=k8s.readiness_probe(type="tcp", port=REVERB_PORT),
        lifecycle=_pre_stop(15),
    )
    template = k8s.pod_template(
        identity,
        [container],
        volumes=_writable_volumes(),
        security_context=k8s.pod_security_context(APP_UID, APP_UID),
        termination_grace=60,
    )
    # WebSocket clients must stick to the pod holding their connection.
    svc = k8s.service(
        name, namespace, identity,
        [k8s.service_port("websocket", REVERB_PORT)],
        session_affinity="ClientIP",
        annotations={"service.kubernetes.io/topology-aware-hints": "auto"},
    )
    svc["spec"]["sessionAffinityConfig"] = {"clientIP": {"timeoutSeconds": 10800}}

    replicas = None if config.features.autoscaling else tier.replicas
    return ResourceSet(
        role="reverb",
        workload=k8s.deployment(name, namespace, identity, template, replicas=replicas),
        service=svc,
        extras=_scaling_extras(name, namespace, identity, tier, config),
        endpoint=f"{name}:{REVERB_PORT}",
    )


def build_runtime(
    config: ResolvedConfig,
    outputs: NamedOutputs,
    namespace: str,
) -> dict[str, ResourceSet]:
    """Build the three runtime tiers, keyed by role."""
    tiers = {
        "web": build_web(config, outputs, namespace),
        "worker": build_worker(config, outputs, namespace),
        "reverb": build_reverb(config, outputs, namespace),
    }
    logger.debug("Built runtime tier (%s)", ", ".join(tiers))
    return tiers
