"""
Configuration loader — reads stackplan.yml (+ per-environment overlay).

Layering, lowest to highest precedence:

    stackplan.yml              base settings shared by every environment
    stackplan.<env>.yml        environment overlay, layered on top (key by key)
    --set key=value            command-line overrides (applied by the caller)

The result is a ``ConfigStore`` of explicit overrides. Defaults are
not applied here; that is the resolver's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from stackplan.core.config.store import ConfigStore
from stackplan.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Default config filename
STACK_CONFIG_FILE = "stackplan.yml"

# Used when neither the caller nor the file names an environment
DEFAULT_ENVIRONMENT = "local"


@dataclass(frozen=True)
class StackConfig:
    """Explicit overrides loaded from disk plus the declared environment."""

    environment: str
    store: ConfigStore
    sources: tuple[Path, ...] = ()


def find_stack_file(start_dir: Path | None = None) -> Path | None:
    """Search for stackplan.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to stackplan.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / STACK_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def overlay_path(base: Path, environment: str) -> Path:
    """Path of the environment overlay that sits beside ``base``."""
    return base.with_name(f"{base.stem}.{environment}{base.suffix}")


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _split_document(data: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """Separate the top-level ``environment`` key from the config mapping."""
    environment = data.get("environment")
    if "config" in data:
        config = data.get("config") or {}
        if not isinstance(config, dict):
            raise ConfigError("'config' must be a mapping")
        config = dict(config)
    else:
        config = {k: v for k, v in data.items() if k not in ("environment", "namespace")}
    if data.get("namespace"):
        config["app.namespace"] = data["namespace"]
    return (str(environment) if environment else None), config


def load_stack_config(
    path: Path | None = None,
    environment: str | None = None,
    required: bool = True,
) -> StackConfig:
    """Load and merge the base stack file and its environment overlay.

    Args:
        path: Explicit path to stackplan.yml. If None, searches upward.
        environment: Environment name. Overrides the file's own
            ``environment`` key and selects the overlay file.
        required: If False, a missing stackplan.yml yields an empty store
            instead of an error.

    Returns:
        StackConfig with the merged override store.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_stack_file()

    if path is None and not required:
        logger.debug("No %s found; using defaults only", STACK_CONFIG_FILE)
        return StackConfig(environment=environment or DEFAULT_ENVIRONMENT, store=ConfigStore())

    if path is None:
        raise ConfigError(
            f"No {STACK_CONFIG_FILE} found. "
            "Create one, or specify --config."
        )

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading stack config from %s", path)

    base = _read_mapping(path)
    declared_env, merged = _split_document(base)
    environment = environment or declared_env or DEFAULT_ENVIRONMENT
    store = ConfigStore(merged)
    sources = [path]

    overlay = overlay_path(path, environment)
    if overlay.is_file():
        logger.debug("Applying %s overlay from %s", environment, overlay)
        _, overlay_config = _split_document(_read_mapping(overlay))
        store = store.layered(ConfigStore(overlay_config))
        sources.append(overlay)

    logger.info(
        "Loaded %d configuration keys from %s",
        len(store), ", ".join(str(s) for s in sources),
    )
    return StackConfig(environment=environment, store=store, sources=tuple(sources))
