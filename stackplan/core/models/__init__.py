"""
Domain models — Pydantic types for topology composition.

All models are re-exported here for convenient access:

    from stackplan.core.models import ResolvedConfig, ResourceSet, Topology
"""

from stackplan.core.models.config import (
    AppConfig,
    BackendConfig,
    CacheConfig,
    DatabaseConfig,
    EngineSelection,
    FeatureFlags,
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
from stackplan.core.models.engines import (
    DEFAULT_PORTS,
    ENGINE_ALIASES,
    ENGINE_CHOICES,
    EXTERNAL_ENGINES,
    SERVICE_NAMES,
    Capability,
)
from stackplan.core.models.environment import Classification, parse_classification
from stackplan.core.models.resources import GeneratedFile, ResourceSet
from stackplan.core.models.secrets import DeferredSecret, LiteralSecret, SecretRef
from stackplan.core.models.topology import CompositionSummary, NamedOutputs, Topology

__all__ = [
    "AppConfig",
    "BackendConfig",
    "CacheConfig",
    "Capability",
    "Classification",
    "CompositionSummary",
    "DEFAULT_PORTS",
    "DatabaseConfig",
    "DeferredSecret",
    "ENGINE_ALIASES",
    "ENGINE_CHOICES",
    "EXTERNAL_ENGINES",
    "EngineSelection",
    "FeatureFlags",
    "GeneratedFile",
    "GitOpsConfig",
    "IngressConfig",
    "LiteralSecret",
    "MailConfig",
    "NamedOutputs",
    "ObservabilityConfig",
    "QueueConfig",
    "ResolvedConfig",
    "ResourceSet",
    "SERVICE_NAMES",
    "SearchConfig",
    "SecretRef",
    "StorageConfig",
    "TierConfig",
    "Topology",
    "parse_classification",
]
