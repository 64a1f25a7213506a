"""
Resolved configuration models — one typed structure per capability.

These are produced once per composition pass by
``stackplan.core.config.resolver.resolve`` and never persisted.
All models are frozen: builders read them, nothing writes them.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from stackplan.core.models.engines import Capability
from stackplan.core.models.environment import Classification
from stackplan.core.models.secrets import SecretRef


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class FeatureFlags(_Frozen):
    """Policy toggles for auxiliary objects (autoscaler, PDB, netpol, quota)."""

    autoscaling: bool = False
    disruption_budget: bool = False
    network_isolation: bool = False
    pod_security: bool = False
    resource_quotas: bool = False


class EngineSelection(_Frozen):
    """Exactly one engine per capability."""

    database: str
    cache: str
    queue: str
    storage: str
    search: str

    def for_capability(self, capability: Capability | str) -> str:
        return getattr(self, Capability(capability).value)


class BackendConfig(_Frozen):
    """Parameters shared by every backend capability."""

    capability: Capability
    engine: str
    enabled: bool                    # False → externally managed
    version: str = "latest"
    host: str
    port: int
    replicas: int = 1
    storage_size: str | None = None
    tls: bool = False
    username: str | None = None
    password: SecretRef | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class DatabaseConfig(BackendConfig):
    database: str = "laravel"
    extensions: list[str] = Field(default_factory=list)


class CacheConfig(BackendConfig):
    eviction_policy: str | None = None
    persistence: bool = True


class QueueConfig(BackendConfig):
    management_port: int | None = None
    erlang_cookie: SecretRef | None = None
    sasl_mechanism: str | None = None
    region: str | None = None
    prefix: str | None = None
    queue_name: str = "default"


class StorageConfig(BackendConfig):
    bucket: str
    region: str | None = None
    endpoint: str | None = None
    console_port: int | None = None
    access_key: SecretRef | None = None
    secret_key: SecretRef | None = None


class SearchConfig(BackendConfig):
    master_key: SecretRef | None = None


class MailConfig(_Frozen):
    enabled: bool
    version: str = "latest"
    smtp_port: int = 1025
    ui_port: int = 8025


class TierConfig(_Frozen):
    """Scaling and resource envelope for one runtime tier."""

    replicas: int
    min_replicas: int
    max_replicas: int
    cpu_request: str
    cpu_limit: str
    memory_request: str
    memory_limit: str


class AppConfig(_Frozen):
    name: str
    environment: str
    debug: bool
    url: str
    image: str
    version: str
    key: SecretRef
    octane_server: str = "swoole"
    web: TierConfig
    worker: TierConfig
    reverb: TierConfig
    reverb_app_id: str = "laravel-app"
    reverb_app_key: str = "laravel-key"
    reverb_app_secret: SecretRef


class IngressConfig(_Frozen):
    enabled: bool
    class_name: str = "nginx"
    host: str = "laravel.local"
    tls: bool = False
    tls_secret_name: str | None = None
    annotations: dict[str, str] = Field(default_factory=dict)


class ObservabilityConfig(_Frozen):
    prometheus: bool
    grafana: bool
    loki: bool
    tempo: bool
    alertmanager: bool
    grafana_admin_password: SecretRef


class GitOpsConfig(_Frozen):
    enabled: bool
    chart_version: str = "7.7.11"
    host: str = "argocd.k8s.orb.local"
    admin_password: SecretRef | None = None
    enable_ingress: bool = True
    ingress_class_name: str = "nginx"
    enable_sso: bool = False
    replicas: int = 1


class ResolvedConfig(_Frozen):
    """The complete, fully-defaulted configuration for one pass."""

    classification: Classification
    namespace: str
    engines: EngineSelection
    features: FeatureFlags
    app: AppConfig
    database: DatabaseConfig
    cache: CacheConfig
    queue: QueueConfig
    storage: StorageConfig
    search: SearchConfig
    mail: MailConfig
    ingress: IngressConfig
    observability: ObservabilityConfig
    gitops: GitOpsConfig

    def backend(self, capability: Capability | str) -> BackendConfig:
        """Look up the resolved backend config for a capability."""
        return getattr(self, Capability(capability).value)
