"""Main CLI entry point for n8nctl.

This module provides the command-line interface for n8nctl, the lifecycle tool
for a self-hosted n8n server behind a Traefik reverse proxy. It includes
commands for host setup, backups, restores and image updates of the docker
compose project.
"""

import os
from typing import Optional

import click

from n8nctl import __version__
from n8nctl.backup import BackupManager, BackupStorage, RecoveryManager, RestoreMode
from n8nctl.config import ConfigManager, OpsConfig
from n8nctl.infrastructure.provisioning import HostProvisioner
from n8nctl.infrastructure.update import UpdateManager
from n8nctl.utils.errors import ErrorHandler, UserCancelled
from n8nctl.utils.files import FileManager, human_size
from n8nctl.utils.logging import setup_logging


def _config(ctx: click.Context) -> OpsConfig:
    return ctx.obj["config"]


def _warn_summary(warnings) -> None:
    if warnings:
        click.echo(click.style(f"Completed with {len(warnings)} warning(s):", fg="yellow"))
        for warning in warnings:
            click.echo(f"  - {warning}")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-file", help="Log to file in addition to console")
@click.option(
    "--project-dir",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory holding docker-compose.yml and .env",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    help="n8nctl.yml to load (default: <project-dir>/n8nctl.yml if present)",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_file: Optional[str],
    project_dir: str,
    config_file: Optional[str],
) -> None:
    """n8nctl - Setup, backup, restore and update for n8n with Traefik.

    Every command acts on one docker compose project directory holding the
    n8n and Traefik services, their .env and their data directories.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    setup_logging(verbose=verbose, log_file=log_file)

    try:
        config = ConfigManager(project_dir).load_config(config_file)
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration loading")
    ctx.obj["config"] = config


@cli.command()
@click.pass_context
def backup(ctx: click.Context) -> None:
    """Create a backup of n8n data, configuration and certificates.

    Writes one timestamped archive into the backup directory and keeps only
    the newest archives according to the retention setting.
    """
    try:
        manager = BackupManager(_config(ctx), verbose=ctx.obj["verbose"])
        result = manager.run_backup()
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Backup")

    click.echo(f"Backup location: {result.archive_path}")
    click.echo(f"Backup size: {result.size_human}")
    if result.pruned:
        click.echo(f"Removed {len(result.pruned)} old backup(s)")
    _warn_summary(result.warnings)


@cli.command()
@click.argument("backup_file")
@click.option("--dry-run", is_flag=True, help="Show what would be restored without changing anything")
@click.option("--config-only", is_flag=True, help="Restore only .env and docker-compose.yml")
@click.option("--data-only", is_flag=True, help="Restore only the n8n data directory")
@click.option("--force", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def restore(
    ctx: click.Context,
    backup_file: str,
    dry_run: bool,
    config_only: bool,
    data_only: bool,
    force: bool,
) -> None:
    """Restore n8n from a backup archive.

    BACKUP_FILE may be a path or the name of an archive in the backup
    directory. The current data and certificate directories are moved aside,
    never deleted.
    """
    if config_only and data_only:
        raise click.UsageError("--config-only and --data-only are mutually exclusive")

    mode = RestoreMode.FULL
    if config_only:
        mode = RestoreMode.CONFIG_ONLY
    elif data_only:
        mode = RestoreMode.DATA_ONLY

    def confirm(message: str) -> bool:
        click.echo(click.style(f"WARNING: {message}", fg="yellow"))
        answer = click.prompt("Type 'yes' to continue", default="", show_default=False)
        return answer.strip() == "yes"

    try:
        manager = RecoveryManager(_config(ctx), confirm=confirm, verbose=ctx.obj["verbose"])
        result = manager.run_restore(backup_file, mode=mode, force=force, dry_run=dry_run)
    except UserCancelled:
        click.echo("Restore cancelled")
        return
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Restore")

    for safety_copy in result.safety_copies:
        click.echo(f"Previous version kept at: {safety_copy}")
    _warn_summary(result.warnings)

    if not dry_run:
        click.echo()
        click.echo("Next steps:")
        click.echo("1. Check the services: docker compose ps")
        click.echo("2. Check the logs: docker compose logs -f")
        click.echo("3. Make sure N8N_ENCRYPTION_KEY matches the one used when the backup was taken")


@cli.command()
@click.option("--backup", "-b", "auto_backup", is_flag=True, help="Create a backup before updating")
@click.pass_context
def update(ctx: click.Context, auto_backup: bool) -> None:
    """Pull the latest images and restart n8n and Traefik.

    Waits for the services to report healthy and compares the versions
    before and after the update.
    """
    config = _config(ctx)
    verbose = ctx.obj["verbose"]

    def confirm(message: str) -> bool:
        return click.confirm(message, default=False)

    try:
        manager = UpdateManager(
            config,
            backup_manager=BackupManager(config, verbose=verbose),
            confirm=confirm,
            verbose=verbose,
        )
        result = manager.run_update(auto_backup=auto_backup)
    except UserCancelled:
        click.echo("Update cancelled")
        return
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Update")

    if result.backup_archive:
        click.echo(f"Pre-update backup: {result.backup_archive}")
    _warn_summary(result.warnings)

    click.echo()
    click.echo("Useful commands:")
    click.echo("  - View logs: docker compose logs -f [service]")
    click.echo("  - Check status: docker compose ps")
    click.echo("  - Restart: docker compose restart")


@cli.command()
@click.pass_context
def setup(ctx: click.Context) -> None:
    """Prepare an Ubuntu host for n8n with Traefik.

    Installs Docker, creates the docker network and directories, creates
    .env from .env.example, configures the firewall and proposes an
    encryption key. Must not be run as root.
    """
    try:
        provisioner = HostProvisioner(_config(ctx), verbose=ctx.obj["verbose"])
        report = provisioner.run_setup()
    except Exception as e:
        ctx.obj["error_handler"].exit_with_error(e, "Setup")

    _warn_summary(report.warnings)

    click.echo()
    click.echo("==================================")
    click.echo("Setup Complete!")
    click.echo("==================================")
    click.echo()
    click.echo("Next steps:")
    click.echo("1. Edit the .env file with your configuration")
    click.echo("2. Update these variables:")
    click.echo("   - N8N_HOST (your domain)")
    click.echo("   - ACME_EMAIL (your email)")
    click.echo("   - N8N_ENCRYPTION_KEY (generated above)")
    click.echo("3. Start the services: docker compose up -d")
    click.echo("4. Check the logs: docker compose logs -f")
    click.echo()
    click.echo("Useful commands:")
    click.echo("  - Backup: n8nctl backup")
    click.echo("  - Update: n8nctl update --backup")


@cli.command("backups")
@click.pass_context
def list_backups(ctx: click.Context) -> None:
    """List backup archives, newest first."""
    config = _config(ctx)
    storage = BackupStorage(config.backup_path, prefix=config.backup_prefix, keep=config.keep_backups)

    archives = storage.list_archives()
    if not archives:
        click.echo(f"No backups found in {storage.backup_dir}")
        return

    click.echo(f"Backups in {storage.backup_dir}:")
    for archive in archives:
        click.echo(f"  {os.path.basename(archive)}  {human_size(storage.archive_size(archive))}")

    total = FileManager().directory_size(storage.backup_dir)
    click.echo(f"{len(archives)} backup(s), {human_size(total)} used in backup directory")


if __name__ == "__main__":
    cli()
