"""
Shared test fixtures and configuration.
"""

import textwrap
from pathlib import Path

import pytest

from stackplan.core.config.resolver import resolve
from stackplan.core.services.composer import compose


@pytest.fixture
def write_stack(tmp_path: Path):
    """Write a stackplan.yml (or overlay) into tmp_path and return its path."""

    def _write(content: str, name: str = "stackplan.yml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def local_config():
    """Resolved configuration for local with no overrides."""
    return resolve("local")


@pytest.fixture
def local_topology():
    """Composed topology for local with no overrides."""
    return compose("local")


@pytest.fixture
def production_overrides() -> dict:
    """The minimum a production stack needs (external bucket name)."""
    return {"s3": {"bucket": "laravel-assets"}}
