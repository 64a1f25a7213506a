"""
CLI commands for topology composition.

Thin wrappers over ``stackplan.core.services.composer`` and ``render``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from stackplan.core.errors import StackplanError

_env_option = click.option(
    "--env", "-e", "environment", default=None,
    help="Environment (local, staging, production). Default: from stackplan.yml, else local.",
)
_set_option = click.option(
    "--set", "-s", "set_pairs", multiple=True, metavar="KEY=VALUE",
    help="Override a configuration key (repeatable).",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)


def _load_overrides(ctx: click.Context, environment: str | None, set_pairs: tuple[str, ...]):
    """Stack files + --set pairs → (environment, store)."""
    from stackplan.core.config.loader import load_stack_config
    from stackplan.core.config.store import ConfigStore

    config_path: Path | None = ctx.obj.get("config_path")
    stack = load_stack_config(config_path, environment, required=config_path is not None)
    store = stack.store
    if set_pairs:
        store = store.layered(ConfigStore.from_pairs(list(set_pairs)))
    return stack.environment, store


def _fail(error: Exception) -> None:
    click.secho(f"❌ {error}", fg="red", err=True)
    sys.exit(1)


# ── Compose ─────────────────────────────────────────────────────


@click.command("compose")
@_env_option
@_set_option
@click.option(
    "--output", "-o", "output_dir", type=click.Path(file_okay=False), default=None,
    help="Render manifests into this directory.",
)
@_json_option
@click.pass_context
def compose(
    ctx: click.Context,
    environment: str | None,
    set_pairs: tuple[str, ...],
    output_dir: str | None,
    as_json: bool,
) -> None:
    """Compose the stack topology and print a deployment summary."""
    from stackplan.core.services.composer import compose as compose_topology
    from stackplan.core.services.render import (
        describe_topology,
        render_topology,
        summary_lines,
        write_files,
    )

    try:
        env, store = _load_overrides(ctx, environment, set_pairs)
        topology = compose_topology(env, store)
        files = None
        if output_dir:
            files = render_topology(topology)
            write_files(files, Path(output_dir))
    except StackplanError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps(describe_topology(topology, files), indent=2))
        return

    quiet = ctx.obj.get("quiet", False)
    if not quiet:
        click.secho(f"\n🧩 Topology: {topology.namespace}", fg="cyan", bold=True)
    for line in summary_lines(topology):
        click.echo(f"   {line}" if line else "")

    if files is not None:
        click.echo()
        click.secho(f"📄 Wrote {len(files)} file(s) to {output_dir}", fg="green")
        for f in files:
            click.echo(f"   {f.path}  — {f.reason}")
    click.echo()


# ── Flags ───────────────────────────────────────────────────────


@click.command("flags")
@_env_option
@_set_option
@_json_option
@click.pass_context
def flags(
    ctx: click.Context,
    environment: str | None,
    set_pairs: tuple[str, ...],
    as_json: bool,
) -> None:
    """Show resolved feature flags."""
    from stackplan.core.models.environment import parse_classification
    from stackplan.core.services.feature_gates import evaluate_features

    try:
        env, store = _load_overrides(ctx, environment, set_pairs)
        classification = parse_classification(env)
        result = evaluate_features(classification, store)
    except StackplanError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps(
            {"environment": classification.value, "features": result.model_dump()},
            indent=2,
        ))
        return

    click.secho(f"🚩 Feature flags ({classification}):", fg="cyan", bold=True)
    for name, enabled in result.model_dump().items():
        mark, color = ("✓", "green") if enabled else ("✗", "white")
        click.secho(f"   {mark} {name}", fg=color)


# ── Engines ─────────────────────────────────────────────────────


@click.command("engines")
@_json_option
def engines(as_json: bool) -> None:
    """List capabilities, their engines, and compatibility aliases."""
    from stackplan.core.models.engines import (
        DEFAULT_PORTS,
        ENGINE_ALIASES,
        ENGINE_CHOICES,
        EXTERNAL_ENGINES,
    )

    if as_json:
        click.echo(json.dumps({
            "capabilities": {cap.value: list(choices) for cap, choices in ENGINE_CHOICES.items()},
            "external": sorted(EXTERNAL_ENGINES),
            "aliases": ENGINE_ALIASES,
            "ports": DEFAULT_PORTS,
        }, indent=2))
        return

    for cap, choices in ENGINE_CHOICES.items():
        click.secho(f"{cap.value}:", fg="cyan", bold=True)
        for engine in choices:
            notes = []
            if engine in EXTERNAL_ENGINES:
                notes.append("external")
            if engine in ENGINE_ALIASES:
                notes.append(f"alias of {ENGINE_ALIASES[engine]}")
            suffix = f"  ({', '.join(notes)})" if notes else ""
            click.echo(f"   • {engine:<14} :{DEFAULT_PORTS[engine]}{suffix}")
