"""
Feature-gate evaluator — policy toggles from classification + overrides.

Every flag is off for ``local`` and on for ``staging``/``production``
unless overridden. Several override spellings are accepted per flag
(``features.hpa`` and ``features.autoscaling`` both reach autoscaling).
"""

from __future__ import annotations

import logging

from stackplan.core.config.lookup import Lookup
from stackplan.core.config.store import ConfigStore
from stackplan.core.models.config import FeatureFlags
from stackplan.core.models.environment import Classification

logger = logging.getLogger(__name__)

# flag → accepted override keys, most specific first
FLAG_KEYS: dict[str, tuple[str, ...]] = {
    "autoscaling": ("features.autoscaling", "features.hpa"),
    "disruption_budget": (
        "features.disruption_budget", "features.disruptionBudget", "features.pdb",
    ),
    "network_isolation": (
        "features.network_isolation", "features.networkPolicies",
        "features.network_policies",
    ),
    "pod_security": (
        "features.pod_security", "features.podSecurityPolicies",
        "features.podSecurity",
    ),
    "resource_quotas": (
        "features.resource_quotas", "features.resourceQuotas", "features.quotas",
    ),
}

_L, _S, _P = Classification.LOCAL, Classification.STAGING, Classification.PRODUCTION

FLAG_DEFAULTS = {
    keys[0]: {_L: False, _S: True, _P: True}
    for keys in FLAG_KEYS.values()
}


def evaluate_features(
    classification: Classification,
    overrides: ConfigStore | None = None,
) -> FeatureFlags:
    """Resolve every feature flag. Never raises for well-typed input."""
    lookup = Lookup(overrides or ConfigStore(), classification, FLAG_DEFAULTS)
    flags = FeatureFlags(
        **{flag: lookup.boolean(*keys) for flag, keys in FLAG_KEYS.items()},
    )
    logger.debug("Feature flags for %s: %s", classification, flags.model_dump())
    return flags
