"""
Config resolver — ``resolve(environment, overrides) -> ResolvedConfig``.

A pure function: no module-level configuration object, no caching.
Every field goes through ``Lookup`` (override → classification default
→ hard fallback → required), and credentials are wrapped as SecretRefs
without being read.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from stackplan.core.config.lookup import Lookup
from stackplan.core.config.store import ConfigStore
from stackplan.core.errors import ConfigError
from stackplan.core.models.config import (
    AppConfig,
    CacheConfig,
    DatabaseConfig,
    GitOpsConfig,
    IngressConfig,
    MailConfig,
    ObservabilityConfig,
    QueueConfig,
    ResolvedConfig,
    SearchConfig,
    StorageConfig,
    TierConfig,
)
from stackplan.core.models.engines import DEFAULT_PORTS, SERVICE_NAMES, Capability
from stackplan.core.models.environment import Classification, parse_classification
from stackplan.core.services.engine_selector import select_engines
from stackplan.core.services.feature_gates import evaluate_features

logger = logging.getLogger(__name__)

_L, _S, _P = Classification.LOCAL, Classification.STAGING, Classification.PRODUCTION

KAFKA_SASL_MECHANISMS = ("PLAIN", "SCRAM-SHA-256", "SCRAM-SHA-512")


def _local_only(value_local: Any, value_other: Any) -> dict[Classification, Any]:
    return {_L: value_local, _S: value_other, _P: value_other}


def _production_only(value_prod: Any, value_other: Any) -> dict[Classification, Any]:
    return {_L: value_other, _S: value_other, _P: value_prod}


# ═══════════════════════════════════════════════════════════════════
#  Data tables
# ═══════════════════════════════════════════════════════════════════

CLASSIFICATION_DEFAULTS: dict[str, dict[Classification, Any]] = {
    # Backends run in-cluster only for local; elsewhere they are managed.
    "backend.enabled": _local_only(True, False),
    "mail.enabled": _local_only(True, False),
    "app.debug": _production_only(False, True),
    "app.web.replicas": _local_only(1, 3),
    "app.worker.replicas": _local_only(1, 2),
    "observability.loki": _production_only(True, False),
    "observability.alertmanager": _production_only(True, False),
}

FALLBACKS: dict[str, Any] = {
    # Engine versions
    "postgresql.version": "16",
    "mysql.version": "8.4",
    "mariadb.version": "11.4",
    "redis.version": "7.4",
    "valkey.version": "8.0",
    "memcached.version": "1.6",
    "rabbitmq.version": "3.13",
    "kafka.version": "3.9.0",
    "beanstalkd.version": "latest",
    "minio.version": "latest",
    "meilisearch.version": "v1.11",
    "mailpit.version": "latest",
    # Sizes
    "database.storage_size": "10Gi",
    "queue.storage_size": "10Gi",
    "minio.storage_size": "20Gi",
    # Names
    "database.name": "laravel",
    "database.username": "laravel",
    "rabbitmq.username": "guest",
    "minio.bucket": "laravel",
    "aws.region": "us-east-1",
    # Runtime tier
    "app.name": "Laravel",
    "app.url": "http://localhost",
    "app.image": "laravel-app",
    "app.version": "latest",
    "app.octane_server": "swoole",
    "app.reverb.replicas": 1,
    "app.web.min_replicas": 1,
    "app.web.max_replicas": 10,
    "app.worker.min_replicas": 1,
    "app.worker.max_replicas": 20,
    "app.reverb.min_replicas": 1,
    "app.reverb.max_replicas": 5,
    "app.reverb.app_id": "laravel-app",
    "app.reverb.app_key": "laravel-key",
    # Ingress
    "ingress.enabled": True,
    "ingress.class_name": "nginx",
    "ingress.host": "laravel.local",
    "ingress.tls": False,
    # Observability
    "observability.prometheus": True,
    "observability.grafana": True,
    "observability.tempo": False,
    # GitOps
    "argocd.enabled": False,
    "argocd.version": "7.7.11",
    "argocd.host": "argocd.k8s.orb.local",
    "argocd.enable_ingress": True,
    "argocd.ingress_class_name": "nginx",
    "argocd.enable_sso": False,
    "argocd.replicas": 1,
}

# Resource envelopes: (cpu_request, cpu_limit, memory_request, memory_limit)
TIER_RESOURCES: dict[str, tuple[str, str, str, str]] = {
    "web": ("500m", "1", "256Mi", "512Mi"),
    "worker": ("250m", "1", "256Mi", "512Mi"),
    "reverb": ("100m", "500m", "128Mi", "256Mi"),
}


# ═══════════════════════════════════════════════════════════════════
#  Per-capability resolution
# ═══════════════════════════════════════════════════════════════════


def _enabled(lk: Lookup, engine: str, capability: str, default_key: str = "backend.enabled") -> bool:
    return lk.boolean(f"{engine}.enabled", f"{capability}.enabled", default_key)


def _common(lk: Lookup, engine: str, capability: str) -> dict[str, Any]:
    """Fields every in-cluster backend resolves the same way."""
    return {
        "version": lk.string(f"{engine}.version", f"{capability}.version", default="latest"),
        "host": lk.string(
            f"{engine}.host", f"{capability}.host", default=SERVICE_NAMES.get(engine, engine),
        ),
        "port": lk.integer(
            f"{engine}.port", f"{capability}.port", default=DEFAULT_PORTS[engine],
        ),
        "replicas": lk.integer(f"{engine}.replicas", f"{capability}.replicas", default=1),
        "tls": lk.boolean(f"{engine}.tls", f"{capability}.tls", default=False),
    }


def _resolve_database(lk: Lookup, engine: str) -> DatabaseConfig:
    cap = Capability.DATABASE.value
    return DatabaseConfig(
        capability=Capability.DATABASE,
        engine=engine,
        enabled=_enabled(lk, engine, cap),
        **_common(lk, engine, cap),
        storage_size=lk.string(
            f"{engine}.storage_size", f"{engine}.storageSize", "database.storage_size",
        ),
        database=lk.string(f"{engine}.database", "database.name"),
        username=lk.string(f"{engine}.username", f"{engine}.user", "database.username"),
        password=lk.secret(f"{engine}.password", "database.password", fallback="changeme"),
        extensions=lk.string_list(f"{engine}.extensions"),
    )


def _resolve_cache(lk: Lookup, engine: str) -> CacheConfig:
    cap = Capability.CACHE.value
    return CacheConfig(
        capability=Capability.CACHE,
        engine=engine,
        enabled=_enabled(lk, engine, cap),
        **_common(lk, engine, cap),
        # Optional: an unauthenticated cache is acceptable.
        password=(
            lk.secret(f"{engine}.password", "cache.password", optional=True)
            if engine != "memcached" else None
        ),
        eviction_policy=lk.optional_string(
            f"{engine}.eviction_policy", f"{engine}.maxmemoryPolicy",
        ),
        persistence=lk.boolean(f"{engine}.persistence", default=True),
    )


def _resolve_queue(lk: Lookup, engine: str) -> QueueConfig:
    cap = Capability.QUEUE.value

    if engine == "sqs":
        region = lk.string("sqs.region", "aws.region")
        return QueueConfig(
            capability=Capability.QUEUE,
            engine=engine,
            enabled=False,
            host=lk.string("sqs.host", default=f"sqs.{region}.amazonaws.com"),
            port=DEFAULT_PORTS["sqs"],
            tls=True,
            region=region,
            prefix=lk.string("sqs.prefix", hint="queue URL prefix for sqs"),
            queue_name=lk.string("sqs.queue", default="default"),
        )

    fields: dict[str, Any] = {
        "capability": Capability.QUEUE,
        "engine": engine,
        "enabled": _enabled(lk, engine, cap),
        **_common(lk, engine, cap),
        "queue_name": lk.string(f"{engine}.queue", "queue.name", default="default"),
    }

    if engine == "redis":
        fields["password"] = lk.secret("redis.password", "queue.password", optional=True)
        return QueueConfig(**fields)

    fields["storage_size"] = lk.string(
        f"{engine}.storage_size", f"{engine}.storageSize", "queue.storage_size",
    )
    if engine == "rabbitmq":
        fields.update(
            username=lk.string("rabbitmq.username", "rabbitmq.user"),
            password=lk.secret("rabbitmq.password", fallback="guest"),
            management_port=lk.integer("rabbitmq.management_port", default=15672),
            erlang_cookie=lk.secret(
                "rabbitmq.erlang_cookie", "rabbitmq.erlangCookie",
                fallback="laravel-rabbitmq-cookie",
            ),
        )
    elif engine == "kafka":
        sasl = lk.optional_string("kafka.sasl_mechanism", "kafka.saslMechanism")
        if sasl:
            sasl = sasl.upper()
            if sasl not in KAFKA_SASL_MECHANISMS:
                raise ConfigError(
                    f"kafka.sasl_mechanism must be one of {', '.join(KAFKA_SASL_MECHANISMS)}, "
                    f"got {sasl!r}"
                )
            # SCRAM users live in the cluster metadata and cannot be seeded from env.
            if fields["enabled"] and sasl != "PLAIN":
                raise ConfigError(
                    f"kafka.sasl_mechanism {sasl} is only supported for an external cluster; "
                    "in-cluster brokers enforce PLAIN"
                )
        fields.update(
            sasl_mechanism=sasl,
            username=lk.string("kafka.username", hint="required with kafka.sasl_mechanism")
            if sasl else None,
            password=lk.secret("kafka.password", fallback="changeme") if sasl else None,
        )
    return QueueConfig(**fields)


def _resolve_storage(lk: Lookup, engine: str) -> StorageConfig:
    cap = Capability.STORAGE.value

    if engine == "s3":
        region = lk.string("s3.region", "aws.region")
        return StorageConfig(
            capability=Capability.STORAGE,
            engine=engine,
            enabled=False,
            host=lk.string("s3.host", default=f"s3.{region}.amazonaws.com"),
            port=DEFAULT_PORTS["s3"],
            tls=True,
            bucket=lk.string("s3.bucket", "storage.bucket", hint="bucket name for s3"),
            region=region,
            endpoint=lk.optional_string("s3.endpoint"),
            access_key=lk.secret(
                "s3.access_key", "s3.key", fallback="changeme",
                production_handle="env:AWS_ACCESS_KEY_ID",
            ),
            secret_key=lk.secret(
                "s3.secret_key", "s3.secret", fallback="changeme",
                production_handle="env:AWS_SECRET_ACCESS_KEY",
            ),
        )

    common = _common(lk, engine, cap)
    return StorageConfig(
        capability=Capability.STORAGE,
        engine=engine,
        enabled=_enabled(lk, engine, cap, default_key="storage.in_cluster"),
        **common,
        storage_size=lk.string("minio.storage_size", "minio.storageSize"),
        bucket=lk.string("minio.bucket", "storage.bucket"),
        region=lk.string("minio.region", "aws.region"),
        endpoint=f"http://{common['host']}:{common['port']}",
        console_port=lk.integer("minio.console_port", default=9001),
        access_key=lk.secret("minio.access_key", "minio.rootUser", fallback="minioadmin"),
        secret_key=lk.secret("minio.secret_key", "minio.rootPassword", fallback="minioadmin"),
    )


def _resolve_search(lk: Lookup, engine: str) -> SearchConfig:
    cap = Capability.SEARCH.value

    if engine == "elasticsearch":
        return SearchConfig(
            capability=Capability.SEARCH,
            engine=engine,
            enabled=False,
            host=lk.string("elasticsearch.host", "search.host", hint="elasticsearch endpoint"),
            port=lk.integer("elasticsearch.port", default=DEFAULT_PORTS["elasticsearch"]),
            tls=lk.boolean("elasticsearch.tls", default=False),
            username=lk.optional_string("elasticsearch.username"),
            password=lk.secret("elasticsearch.password", optional=True),
        )

    return SearchConfig(
        capability=Capability.SEARCH,
        engine=engine,
        enabled=_enabled(lk, engine, cap, default_key="search.in_cluster"),
        **_common(lk, engine, cap),
        master_key=lk.secret(
            "meilisearch.master_key", "meilisearch.masterKey", fallback="changeme",
        ),
    )


def _resolve_tier(lk: Lookup, tier: str) -> TierConfig:
    cpu_req, cpu_lim, mem_req, mem_lim = TIER_RESOURCES[tier]
    prefix = f"app.{tier}"
    return TierConfig(
        replicas=lk.integer(f"{prefix}.replicas", f"app.{tier}Replicas"),
        min_replicas=lk.integer(f"{prefix}.min_replicas", f"app.{tier}MinReplicas"),
        max_replicas=lk.integer(f"{prefix}.max_replicas", f"app.{tier}MaxReplicas"),
        cpu_request=lk.string(f"{prefix}.cpu_request", f"app.{tier}CpuRequest", default=cpu_req),
        cpu_limit=lk.string(f"{prefix}.cpu_limit", f"app.{tier}CpuLimit", default=cpu_lim),
        memory_request=lk.string(
            f"{prefix}.memory_request", f"app.{tier}MemoryRequest", default=mem_req,
        ),
        memory_limit=lk.string(
            f"{prefix}.memory_limit", f"app.{tier}MemoryLimit", default=mem_lim,
        ),
    )


def _resolve_app(lk: Lookup) -> AppConfig:
    return AppConfig(
        name=lk.string("app.name", "app.appName"),
        environment=lk.string("app.env", "app.environment", default=lk.classification.value),
        debug=lk.boolean("app.debug"),
        url=lk.string("app.url", "app.appUrl"),
        image=lk.string("app.image"),
        version=lk.string("app.version", "app.imageTag"),
        key=lk.secret("app.key", "app.appKey", fallback="base64:changeme"),
        octane_server=lk.string("app.octane_server", "app.octaneServer"),
        web=_resolve_tier(lk, "web"),
        worker=_resolve_tier(lk, "worker"),
        reverb=_resolve_tier(lk, "reverb"),
        reverb_app_id=lk.string("app.reverb.app_id"),
        reverb_app_key=lk.string("app.reverb.app_key"),
        reverb_app_secret=lk.secret("app.reverb.app_secret", fallback="changeme"),
    )


def _resolve_mail(lk: Lookup) -> MailConfig:
    return MailConfig(
        enabled=lk.boolean("mailpit.enabled", "mail.enabled"),
        version=lk.string("mailpit.version"),
        smtp_port=lk.integer("mailpit.smtp_port", default=1025),
        ui_port=lk.integer("mailpit.ui_port", default=8025),
    )


def _resolve_ingress(lk: Lookup) -> IngressConfig:
    return IngressConfig(
        enabled=lk.boolean("ingress.enabled"),
        class_name=lk.string("ingress.class_name", "ingress.className"),
        host=lk.string("ingress.host"),
        tls=lk.boolean("ingress.tls"),
        tls_secret_name=lk.optional_string("ingress.tls_secret_name", "ingress.tlsSecretName"),
        annotations=lk.mapping("ingress.annotations"),
    )


def _resolve_observability(lk: Lookup) -> ObservabilityConfig:
    return ObservabilityConfig(
        prometheus=lk.boolean("observability.prometheus"),
        grafana=lk.boolean("observability.grafana"),
        loki=lk.boolean("observability.loki"),
        tempo=lk.boolean("observability.tempo"),
        alertmanager=lk.boolean("observability.alertmanager"),
        grafana_admin_password=lk.secret(
            "observability.grafana_admin_password", "grafana.adminPassword",
            fallback="admin",
        ),
    )


def _resolve_gitops(lk: Lookup) -> GitOpsConfig:
    enabled = lk.boolean("argocd.enabled")
    return GitOpsConfig(
        enabled=enabled,
        chart_version=lk.string("argocd.version", "argocd.chartVersion"),
        host=lk.string("argocd.host", "argocd.domain"),
        admin_password=(
            lk.secret("argocd.admin_password", "argocd.adminPassword", optional=True)
            if enabled else None
        ),
        enable_ingress=lk.boolean("argocd.enable_ingress", "argocd.enableIngress"),
        ingress_class_name=lk.string("argocd.ingress_class_name", "argocd.ingressClassName"),
        enable_sso=lk.boolean("argocd.enable_sso", "argocd.enableSSO"),
        replicas=lk.integer("argocd.replicas"),
    )


# ═══════════════════════════════════════════════════════════════════
#  Entry point
# ═══════════════════════════════════════════════════════════════════


def resolve(
    environment: str | Classification,
    overrides: ConfigStore | Mapping[str, Any] | None = None,
) -> ResolvedConfig:
    """Resolve the complete configuration for one composition pass.

    Args:
        environment: Classification name (``local``, ``staging``,
            ``production`` or an accepted alias).
        overrides: Explicit overrides, as a store or a plain mapping.

    Raises:
        ConfigError: Unknown classification, mistyped values, or plaintext
            credentials in production.
        MissingConfigError: A required field has no value anywhere.
        InvalidEngineError: An engine override is outside its enumeration.
    """
    classification = parse_classification(environment)
    store = overrides if isinstance(overrides, ConfigStore) else ConfigStore(overrides)

    engines = select_engines(classification, store)
    features = evaluate_features(classification, store)

    defaults = {
        **CLASSIFICATION_DEFAULTS,
        # Selecting an in-cluster-only engine implies running it.
        "storage.in_cluster": {c: True for c in Classification},
        "search.in_cluster": {c: True for c in Classification},
    }
    lk = Lookup(store, classification, defaults, FALLBACKS)

    namespace = lk.string("app.namespace", default=f"laravel-{classification.value}")

    config = ResolvedConfig(
        classification=classification,
        namespace=namespace,
        engines=engines,
        features=features,
        app=_resolve_app(lk),
        database=_resolve_database(lk, engines.database),
        cache=_resolve_cache(lk, engines.cache),
        queue=_resolve_queue(lk, engines.queue),
        storage=_resolve_storage(lk, engines.storage),
        search=_resolve_search(lk, engines.search),
        mail=_resolve_mail(lk),
        ingress=_resolve_ingress(lk),
        observability=_resolve_observability(lk),
        gitops=_resolve_gitops(lk),
    )
    logger.info(
        "Resolved %s configuration (namespace=%s, %d overrides)",
        classification, namespace, len(store),
    )
    return config
