"""EBS tagger operator CLI (ebstagctl).

Tooling around the long-running tagger process. All commands read the same
environment variables as the process itself.

Usage:
    ebstagctl config          # Validate and print the effective configuration
    ebstagctl once            # Run a single reconciliation pass
    ebstagctl once --dry-run  # Single pass without applying any tag
    ebstagctl run             # Run the tagger loop in the foreground
"""

from __future__ import annotations

import asyncio
import dataclasses
import sys

import click

from .config import Config, ConfigurationError
from .main import main as run_main
from .main import setup_logging
from .reconciler import PassResult, TagReconciler
from .volume_directory import Ec2VolumeDirectory, ReconcileError


def load_config() -> Config:
    """Load configuration, turning validation failures into CLI errors."""
    try:
        return Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def echo_pass_result(result: PassResult) -> None:
    click.echo(f"Cluster:            {result.cluster_name}")
    click.echo(f"Volumes discovered: {result.volumes_discovered}")
    click.echo(f"Already converged:  {result.volumes_converged}")
    click.echo(f"Volumes tagged:     {result.volumes_tagged}")
    click.echo(f"Skipped (disabled): {result.volumes_skipped}")
    click.echo(f"Tags applied:       {result.mutations_applied}")
    click.echo(f"Blocked mismatches: {result.mutations_blocked}")
    click.echo(f"Duration:           {result.duration_seconds:.2f}s")


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="ebstagctl")
@click.option(
    "--log-level",
    default=None,
    help="Root log level [default: WARNING, or LOG_LEVEL/INFO for run]",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """EBS tagger CLI (ebstagctl).

    Inspect configuration and run reconciliation passes by hand.
    """
    ctx.obj = log_level
    setup_logging(log_level or "WARNING")


@cli.command("config")
def show_config() -> None:
    """Validate and print the configuration read from the environment."""
    config = load_config()

    click.echo(f"Cluster name:           {config.cluster_name}")
    click.echo(f"Region:                 {config.region}")
    click.echo(f"Tagging enabled:        {config.tagging_enabled}")
    click.echo(f"Overwrite if different: {config.overwrite_if_different}")
    click.echo(f"Interval (minutes):     {config.interval_minutes:g}")
    click.echo(f"Apply pacing (seconds): {config.apply_pacing_seconds:g}")
    if config.desired_tags:
        click.echo("Desired tags:")
        for key, value in sorted(config.desired_tags.items()):
            click.echo(f"  {key}={value}")
    else:
        click.secho("No desired tags configured (set TAG_<name>=<value>)", fg="yellow")


@cli.command()
@click.option("--dry-run", is_flag=True, help="Log intended changes without applying them")
def once(dry_run: bool) -> None:
    """Run exactly one reconciliation pass and print a summary."""
    config = load_config()
    if dry_run:
        config = dataclasses.replace(config, tagging_enabled=False)

    reconciler = TagReconciler(config, Ec2VolumeDirectory.for_region(config.region))
    try:
        result = asyncio.run(reconciler.reconcile_once())
    except ReconcileError as e:
        raise click.ClickException(str(e)) from e

    echo_pass_result(result)


@cli.command()
@click.pass_obj
def run(log_level: str | None) -> None:
    """Run the tagger loop in the foreground (same as `ebs-tagger`)."""
    sys.exit(asyncio.run(run_main(log_level)))


if __name__ == "__main__":
    cli()
