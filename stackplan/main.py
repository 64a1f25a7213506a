"""
stackplan — CLI entrypoint.

Usage:
    python -m stackplan.main --help
    python -m stackplan.main compose --env production --set s3.bucket=assets
    python -m stackplan.main config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from stackplan import __version__
from stackplan.core.observability.logging_config import (
    FILE_ENV,
    FILE_LEVEL_ENV,
    cli_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="stackplan")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to stackplan.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """stackplan — compose a Laravel stack topology for Kubernetes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=cli_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(FILE_ENV),
        log_file_level=os.environ.get(FILE_LEVEL_ENV),
    )


@cli.group()
def config() -> None:
    """Stack configuration commands."""


@config.command("check")
@click.option("--env", "-e", "environment", default=None, help="Target environment.")
@click.option(
    "--set", "-s", "set_pairs", multiple=True, metavar="KEY=VALUE",
    help="Override a configuration key (repeatable).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(
    ctx: click.Context,
    environment: str | None,
    set_pairs: tuple[str, ...],
    as_json: bool,
) -> None:
    """Resolve configuration without composing, and report issues."""
    from stackplan.core.config.store import ConfigStore
    from stackplan.core.errors import ConfigError
    from stackplan.core.use_cases.config_check import check_config

    try:
        overrides = ConfigStore.from_pairs(list(set_pairs)) if set_pairs else None
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    result = check_config(
        config_path=ctx.obj.get("config_path"),
        environment=environment,
        overrides=overrides,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        cfg = result.config
        assert cfg is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Environment: {cfg.classification}")
        click.echo(f"   Namespace:   {cfg.namespace}")
        engines = cfg.engines.model_dump()
        click.echo("   Engines:     " + ", ".join(f"{k}={v}" for k, v in engines.items()))
        for source in result.sources:
            click.echo(f"   📄 {source}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Register sub-commands from stackplan/ui/cli/ ─────────────────

from stackplan.ui.cli.topology import compose, engines, flags

cli.add_command(compose)
cli.add_command(flags)
cli.add_command(engines)


if __name__ == "__main__":
    cli()
