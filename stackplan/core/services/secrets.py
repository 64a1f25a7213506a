"""
Secret materializer — credentials as referenceable Secret manifests.

Resolved configuration carries credentials as ``SecretRef`` values.
Builders place those refs, unresolved, into Secret manifests and
reference them from pods via ``secretKeyRef``. Deferred handles are
resolved only at render time by a ``SecretResolver``:

    env:NAME        read NAME from the process environment
    generate        random 32-character password
    generate:N      random N-character password
"""

from __future__ import annotations

import logging
import os
import secrets
import string
from typing import Any, Mapping

from stackplan.core.errors import ConfigError, SecretResolutionError

logger = logging.getLogger(__name__)

GENERATE_HANDLE = "generate"

_ALPHABET = string.ascii_letters + string.digits
_SCHEMES = ("env", "generate")


def validate_handle(handle: str, field: str = "") -> None:
    """Check that a deferred handle uses a known scheme.

    Raises:
        ConfigError: On unknown schemes or malformed arguments.
    """
    scheme, _, arg = handle.partition(":")
    where = f"{field}: " if field else ""
    if scheme not in _SCHEMES:
        raise ConfigError(
            f"{where}unknown secret handle '{handle}' "
            f"(expected one of: {', '.join(s + ':' for s in _SCHEMES)})"
        )
    if scheme == "env" and not arg:
        raise ConfigError(f"{where}env handle needs a variable name (env:NAME)")
    if scheme == "generate" and arg and not arg.isdigit():
        raise ConfigError(f"{where}generate handle length must be numeric, got '{arg}'")


def generate_password(length: int = 32) -> str:
    """Random alphanumeric password from the system CSPRNG."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


class SecretResolver:
    """Turns deferred handles into plaintext at consumption time.

    Args:
        environ: Mapping consulted for ``env:`` handles (default: os.environ).
    """

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    def resolve(self, handle: str) -> str:
        scheme, _, arg = handle.partition(":")
        if scheme == "env":
            if arg not in self._environ:
                raise SecretResolutionError(
                    f"Environment variable '{arg}' is not set (secret handle '{handle}')"
                )
            return self._environ[arg]
        if scheme == "generate":
            return generate_password(int(arg) if arg else 32)
        raise SecretResolutionError(f"Unknown secret handle: {handle}")


def build_secret(
    name: str,
    namespace: str,
    data: Mapping[str, Any],
    labels: Mapping[str, str],
    secret_type: str = "Opaque",
) -> dict[str, Any]:
    """Describe a Secret whose ``stringData`` values are still SecretRefs.

    Plain strings (usernames, database names) are allowed alongside
    refs; ``None`` values are dropped.
    """
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": dict(labels),
        },
        "type": secret_type,
        "stringData": {k: v for k, v in data.items() if v is not None},
    }


def secret_env(env_name: str, secret_name: str, key: str) -> dict[str, Any]:
    """Env var entry that reads one key from a Secret."""
    return {
        "name": env_name,
        "valueFrom": {"secretKeyRef": {"name": secret_name, "key": key}},
    }


def env_from_secret(secret_name: str, keys: list[str]) -> list[dict[str, Any]]:
    """Env var entries for several keys (KEY-NAME → KEY_NAME)."""
    return [
        secret_env(key.upper().replace("-", "_"), secret_name, key)
        for key in keys
    ]


def materialize_secret(manifest: dict[str, Any], resolver: SecretResolver) -> dict[str, Any]:
    """Return a copy of a Secret manifest with every SecretRef revealed."""
    from stackplan.core.models.secrets import DeferredSecret, LiteralSecret

    resolved: dict[str, str] = {}
    for key, value in manifest.get("stringData", {}).items():
        if isinstance(value, (LiteralSecret, DeferredSecret)):
            resolved[key] = value.reveal(resolver)
        else:
            resolved[key] = str(value)
    logger.debug(
        "Materialized secret %s (%d keys)", manifest["metadata"]["name"], len(resolved),
    )
    return {**manifest, "stringData": resolved}
