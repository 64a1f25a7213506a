"""
Config check use case — load stack files, resolve, and report issues
without composing any resources.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from stackplan.core.config.loader import load_stack_config
from stackplan.core.config.resolver import resolve
from stackplan.core.config.store import ConfigStore
from stackplan.core.errors import ConfigError, MissingConfigError
from stackplan.core.models.config import ResolvedConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    environment: str | None = None
    sources: list[Path] = field(default_factory=list)
    config: ResolvedConfig | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing_field: str | None = None

    def to_dict(self) -> dict:
        cfg = self.config
        return {
            "valid": self.valid,
            "environment": self.environment,
            "sources": [str(p) for p in self.sources],
            "errors": self.errors,
            "warnings": self.warnings,
            "missing_field": self.missing_field,
            "namespace": cfg.namespace if cfg else None,
            "engines": cfg.engines.model_dump() if cfg else None,
            "features": cfg.features.model_dump() if cfg else None,
        }


def check_config(
    config_path: Path | None = None,
    environment: str | None = None,
    overrides: ConfigStore | None = None,
) -> ConfigCheckResult:
    """Resolve configuration and collect errors and warnings.

    Args:
        config_path: Explicit stackplan.yml (default: auto-detect, optional).
        environment: Environment name; beats the file's ``environment`` key.
        overrides: Command-line overrides layered over the files.
    """
    result = ConfigCheckResult()

    try:
        stack = load_stack_config(config_path, environment, required=config_path is not None)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.sources = list(stack.sources)
    result.environment = stack.environment
    store = stack.store.layered(overrides) if overrides else stack.store

    if not stack.sources:
        result.warnings.append("No stackplan.yml found; using defaults only.")

    try:
        config = resolve(result.environment, store)
    except MissingConfigError as e:
        result.missing_field = e.field
        result.errors.append(str(e))
        return result
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.config = config

    if config.classification.is_production:
        if config.app.debug:
            result.warnings.append("APP_DEBUG is enabled in production.")
        if not config.ingress.tls:
            result.warnings.append("Ingress TLS is disabled in production.")
    if config.features.autoscaling and config.app.web.min_replicas > config.app.web.replicas:
        result.warnings.append("app.web.min_replicas exceeds app.web.replicas.")
    for tier in ("web", "worker", "reverb"):
        t = getattr(config.app, tier)
        if t.min_replicas > t.max_replicas:
            result.errors.append(
                f"app.{tier}.min_replicas ({t.min_replicas}) exceeds "
                f"max_replicas ({t.max_replicas})"
            )

    result.valid = not result.errors
    return result
