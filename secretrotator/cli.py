"""Main CLI entry point for the secret rotator.

This module provides the command-line interface for running the rotation
controller, inspecting rotation status, reconciling a single policy on
demand and managing the configuration file.
"""

import signal
from datetime import datetime
from typing import Optional

import click

from secretrotator import __version__
from secretrotator.utils.errors import ErrorHandler, format_validation_errors
from secretrotator.utils.logging import setup_logging


def _build_controller(ctx: click.Context, workers: Optional[int] = None):
    """Create a rotation controller from the loaded configuration."""
    from secretrotator.controller import RotationController, StateStore
    from secretrotator.secrets import build_secret_store

    config_manager = ctx.obj["config_manager"]
    rotator_config = config_manager.get_rotator_config()

    return RotationController(
        config_manager=config_manager,
        state_store=StateStore(rotator_config["state_file"]),
        secret_store=build_secret_store(config_manager.get_store_config()),
        workers=workers or rotator_config["workers"],
    )


def _format_time(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--dry-run", is_flag=True, help="Show what would be done without executing")
@click.option("--log-file", help="Log to file in addition to console")
@click.option("--config", "-c", "config_path", help="Path to configuration file (default: ./secret-rotator.yml)")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    dry_run: bool,
    log_file: Optional[str],
    config_path: Optional[str],
) -> None:
    """Secret Rotator - periodic credential rotation into secret stores.

    Rotation policies in the configuration file describe how often each
    secret is regenerated and where it is written. The controller keeps
    every policy rotated on schedule and records the outcome of each cycle.
    """
    from secretrotator.config import ConfigManager

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["dry_run"] = dry_run
    ctx.obj["log_file"] = log_file
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)
    ctx.obj["config_manager"] = ConfigManager(config_path)

    setup_logging(verbose=verbose, log_file=log_file)


@cli.command()
@click.option(
    "--store",
    "store_type",
    type=click.Choice(["file", "vault"]),
    default="file",
    help="Secret store backend",
)
@click.option("--vault-address", default="http://vault.vault-system:8200", help="Vault server address")
@click.pass_context
def init(ctx: click.Context, store_type: str, vault_address: str) -> None:
    """Create a default configuration file."""
    config_manager = ctx.obj["config_manager"]

    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would create configuration file {config_manager.config_path}")
        click.echo(f"DRY RUN: Store: {store_type}")
        return

    try:
        config_path = config_manager.initialize_config(store_type=store_type, vault_address=vault_address)
        click.echo(f"✓ Created configuration file: {config_path}")
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration initialization")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate the configuration file and its rotation policies."""
    config_manager = ctx.obj["config_manager"]

    errors = config_manager.validator.validate_config_file(config_manager.config_path)
    if errors:
        click.echo(f"✗ {format_validation_errors(errors)}", err=True)
        ctx.exit(1)

    click.echo(f"✓ Configuration is valid: {config_manager.config_path}")


@cli.command()
@click.option("--length", "-l", default=16, show_default=True, help="Password length")
@click.option("--symbols/--no-symbols", default=False, help="Include symbols in the alphabet")
@click.pass_context
def generate(ctx: click.Context, length: int, symbols: bool) -> None:
    """Generate a password with the rotation alphabet."""
    from secretrotator.secrets import CredentialGenerator

    try:
        click.echo(CredentialGenerator().generate(length, symbols))
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Password generation")


@cli.command()
@click.argument("name")
@click.pass_context
def reconcile(ctx: click.Context, name: str) -> None:
    """Run one rotation cycle for policy NAME now."""
    if ctx.obj["dry_run"]:
        click.echo(f"DRY RUN: Would reconcile rotation policy: {name}")
        return

    try:
        controller = _build_controller(ctx)
        controller.sync_policies()
        result = controller.reconcile_policy(name)
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Reconciling {name}")
        return

    from secretrotator.utils.durations import format_duration

    state = result.state
    directive = result.directive
    status = state.status.value if state.status else "Pending"

    click.echo(f"Policy: {name}")
    click.echo(f"  Status: {status}")
    click.echo(f"  Last rotated: {_format_time(state.last_rotated_time)}")
    if state.message:
        click.echo(f"  Message: {state.message}")
    if not directive.requeue:
        click.echo("  Next cycle: on configuration change")
    else:
        click.echo(f"  Next cycle: in {format_duration(directive.requeue_after)}")

    if state.status is not None and status != "Ready":
        ctx.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show rotation status of every policy."""
    try:
        controller = _build_controller(ctx)
        controller.sync_policies()
        report = controller.status_report()
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Rotation status")
        return

    if not report:
        click.echo("No rotation policies configured")
        return

    click.echo(f"{'NAME':<28} {'STATUS':<16} {'LAST ROTATED':<26} {'NEXT ROTATION':<26}")
    for entry in report:
        click.echo(
            f"{entry['name']:<28} {entry['status'] or 'Pending':<16} "
            f"{_format_time(entry['last_rotated_time']):<26} "
            f"{_format_time(entry['next_rotation_time']):<26}"
        )
        if ctx.obj["verbose"] and entry["message"]:
            click.echo(f"  {entry['message']}")


@cli.command()
@click.option("--once", is_flag=True, help="Reconcile due policies once and exit")
@click.option("--workers", "-w", type=int, help="Policies reconciled in parallel")
@click.option("--poll-interval", default=1.0, show_default=True, help="Seconds between checks for due work")
@click.pass_context
def run(ctx: click.Context, once: bool, workers: Optional[int], poll_interval: float) -> None:
    """Run the rotation controller."""
    if ctx.obj["dry_run"]:
        click.echo("DRY RUN: Would start the rotation controller")
        return

    try:
        controller = _build_controller(ctx, workers=workers)

        if once:
            controller.sync_policies()
            processed = controller.run_once()
            click.echo(f"Reconciled {processed} policies")
            return

        def handle_signal(signum, frame):
            click.echo("\nStopping rotation controller...")
            controller.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        click.echo("Starting rotation controller (Ctrl+C to stop)...")
        controller.run(poll_interval=poll_interval)

    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Rotation controller")


if __name__ == "__main__":
    cli()
