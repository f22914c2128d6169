"""
vaultshift CLI Application - Built with Click.

Operator commands for the storage subsystem:
- Inspect and change the storage configuration
- Test connectivity to a destination
- Run a migration in the foreground with live progress
- Switch the active storage once a migration succeeded
"""

import asyncio
import signal
import sys
from dataclasses import dataclass
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vaultshift import __version__
from vaultshift.core.config import (
    SETTING_KEYS,
    LocalStorageConfig,
    MigrationOptions,
    S3StorageConfig,
)
from vaultshift.core.settings import JsonFileSettingsStore
from vaultshift.migration import MigrationLogEntry, MigrationState, MigrationStatus
from vaultshift.monitoring.logging import configure_json_logging
from vaultshift.monitoring.prometheus import MigrationMetrics, start_metrics_server
from vaultshift.service import StorageService
from vaultshift.storage.core import StorageError, format_bytes

console = Console()

DEFAULT_SETTINGS_FILE = ".vaultshift/settings.json"
POLL_INTERVAL_SECONDS = 0.5

_LEVEL_STYLES = {"info": "cyan", "warning": "yellow", "error": "red"}


@dataclass
class CliContext:
    """Options shared by every command."""

    settings_file: str
    local_root: str | None
    metrics_port: int

    def build_service(
        self,
        options: MigrationOptions | None = None,
        metrics: MigrationMetrics | None = None,
    ) -> StorageService:
        return StorageService(
            JsonFileSettingsStore(self.settings_file),
            options=options,
            metrics=metrics,
            default_root=self.local_root,
        )


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="vaultshift")
@click.option(
    "--settings-file",
    envvar="VAULTSHIFT_SETTINGS_FILE",
    default=DEFAULT_SETTINGS_FILE,
    show_default=True,
    help="JSON file holding the storage settings",
)
@click.option(
    "--local-root",
    envvar="VAULTSHIFT_LOCAL_ROOT",
    default=None,
    help="Root of the local storage when none is saved (default: working directory)",
)
@click.option(
    "--log-level",
    envvar="VAULTSHIFT_LOG_LEVEL",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level of the vaultshift loggers (written to stderr)",
)
@click.option("--json-logs", is_flag=True, help="Emit structured JSON log lines")
@click.option(
    "--metrics-port",
    envvar="VAULTSHIFT_METRICS_PORT",
    default=0,
    type=int,
    help="Expose Prometheus metrics on this port during migrations (0 = off)",
)
@click.pass_context
def cli(ctx, settings_file, local_root, log_level, json_logs, metrics_port):
    """
    vaultshift - move stored objects from local disk to S3-compatible storage.

    \b
    Configuration:
        config show        Show the active and saved storage settings
        config set-local   Use local filesystem storage
        config set-s3      Save S3 settings (optionally activate them)
    \b
    Migration:
        test-connection    Check the saved (or given) S3 destination
        list               List objects in the active storage
        migrate            Copy every object into the S3 destination
        activate           Switch the active storage to the saved S3 settings
    """
    configure_json_logging(log_level, json_format=json_logs)
    ctx.obj = CliContext(
        settings_file=settings_file,
        local_root=local_root,
        metrics_port=metrics_port,
    )


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


# ============================================================================
# vaultshift config
# ============================================================================


@click.group(cls=OrderedGroup)
def config_cmd():
    """Show or change the storage configuration."""


@config_cmd.command("show")
@click.pass_obj
def config_show(obj: CliContext):
    """Show the active storage and the saved S3 settings (secret masked)."""

    async def _show() -> tuple[dict[str, Any], dict[str, Any], str]:
        service = obj.build_service()
        async with service:
            active = await service.get_storage_config()
            saved = await service.get_saved_s3_config()
            status = await service.settings.get(SETTING_KEYS.MIGRATION_STATUS, "idle")
        return active.to_dict(), saved.to_dict(mask_secrets=True), status

    active, saved, status = asyncio.run(_show())

    table = Table(title="Storage Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("active storage", f"[bold]{active['type']}[/bold]")
    if active["type"] == "local":
        table.add_row("local root", active["root"])
    for name in ("endpoint", "region", "bucket", "access_key", "secret_key", "path_style", "use_ssl"):
        table.add_row(f"s3 {name}", str(saved[name]) if saved[name] != "" else "[dim]-[/dim]")
    table.add_row("last migration", status)
    console.print(table)


@config_cmd.command("set-local")
@click.option("--root", required=True, type=click.Path(file_okay=False), help="Storage root directory")
@click.pass_obj
def config_set_local(obj: CliContext, root: str):
    """Make local filesystem storage the active storage."""

    async def _save() -> None:
        async with obj.build_service() as service:
            await service.update_storage_config(LocalStorageConfig(root=root))

    asyncio.run(_save())
    console.print(f"[green]✓ Active storage: local ({root})[/green]")


def _s3_options(func):
    """S3 connection options shared by set-s3 and test-connection."""
    options = [
        click.option("--endpoint", help="S3 API endpoint (host:port or URL)"),
        click.option("--bucket", help="Bucket name"),
        click.option("--access-key", help="Access key id"),
        click.option("--secret-key", help="Secret access key"),
        click.option("--region", help="Region (default: us-east-1)"),
        click.option(
            "--path-style/--virtual-host",
            "path_style",
            default=None,
            help="Addressing style (path-style is required by MinIO)",
        ),
        click.option("--ssl/--no-ssl", "use_ssl", default=None, help="Use https for the endpoint"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _merge_s3(saved: S3StorageConfig, **overrides: Any) -> S3StorageConfig:
    """Saved S3 settings with any explicitly given option applied on top."""
    values = {
        "endpoint": saved.endpoint,
        "bucket": saved.bucket,
        "access_key": saved.access_key,
        "secret_key": saved.secret_key,
        "region": saved.region,
        "path_style": saved.path_style,
        "use_ssl": saved.use_ssl,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return S3StorageConfig(**values)


@config_cmd.command("set-s3")
@_s3_options
@click.option("--activate", is_flag=True, help="Also make S3 the active storage")
@click.pass_obj
def config_set_s3(obj: CliContext, activate: bool, **s3_options):
    """
    Save S3 settings. Missing options keep their saved value.

    \b
    Example:
        vaultshift config set-s3 --endpoint localhost:9000 --bucket vault \\
            --access-key minio --secret-key minio123 --no-ssl
    """

    async def _save() -> S3StorageConfig:
        async with obj.build_service() as service:
            config = _merge_s3(await service.get_saved_s3_config(), **s3_options)
            return await service.update_storage_config(config, activate=activate)

    try:
        config = asyncio.run(_save())
    except StorageError as e:
        _fail(e.message)
        return

    state = "saved and activated" if activate else "saved"
    console.print(f"[green]✓ S3 settings {state} ({config.endpoint_url}/{config.bucket})[/green]")


# ============================================================================
# vaultshift test-connection
# ============================================================================


@click.command()
@_s3_options
@click.option(
    "--probe-write/--no-probe-write",
    default=True,
    show_default=True,
    help="Write, read back and delete a probe object (creates the bucket if missing)",
)
@click.pass_obj
def test_connection_cmd(obj: CliContext, probe_write: bool, **s3_options):
    """Test the saved S3 settings, with any option overriding them."""

    async def _test():
        async with obj.build_service() as service:
            config = _merge_s3(await service.get_saved_s3_config(), **s3_options)
            return await service.test_connection(config, probe_write=probe_write)

    result = asyncio.run(_test())

    table = Table(show_header=False, box=None)
    for name, value in result.details.items():
        table.add_row(f"[cyan]{name}[/cyan]", str(value))
    table.add_row("[cyan]latency[/cyan]", f"{result.latency_ms:.0f} ms")

    style = "green" if result.success else "red"
    icon = "✓" if result.success else "✗"
    console.print(Panel(table, title=f"[{style}]{icon} {result.message}[/{style}]", border_style=style))
    if not result.success:
        sys.exit(1)


# ============================================================================
# vaultshift list
# ============================================================================


@click.command()
@click.option("--prefix", default="", help="Only keys starting with this prefix")
@click.option("--limit", default=50, show_default=True, type=click.IntRange(min=0), help="0 = no limit")
@click.pass_obj
def list_cmd(obj: CliContext, prefix: str, limit: int):
    """List objects in the active storage."""

    async def _list():
        async with obj.build_service() as service:
            provider = await service.get_provider()
            objects = []
            async for info in provider.list(prefix):
                objects.append(info)
                if limit and len(objects) >= limit:
                    break
            return provider.describe(), objects

    try:
        location, objects = asyncio.run(_list())
    except StorageError as e:
        _fail(e.message)
        return

    table = Table(title=location)
    table.add_column("Key", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Last modified")
    for info in objects:
        table.add_row(
            info.key,
            format_bytes(info.size) if info.size is not None else "-",
            info.last_modified.isoformat(timespec="seconds") if info.last_modified else "-",
        )
    console.print(table)
    console.print(f"{len(objects)} object(s)")


# ============================================================================
# vaultshift migrate
# ============================================================================


def _print_entries(entries: list[MigrationLogEntry]) -> None:
    for entry in entries:
        style = _LEVEL_STYLES.get(entry.level.value, "white")
        console.print(
            f"[dim]{entry.timestamp:%H:%M:%S}[/dim] [{style}]{entry.level.value:<7}[/{style}] "
            f"{entry.message}",
            highlight=False,
        )


def _print_summary(state: MigrationState) -> None:
    table = Table(title=f"Migration {state.status.value}")
    table.add_column("", style="cyan")
    table.add_column("", justify="right")
    table.add_row("objects discovered", str(state.total_objects))
    table.add_row("migrated", str(state.migrated_objects))
    table.add_row("failed", str(state.failed_objects))
    table.add_row("data migrated", format_bytes(state.migrated_bytes))
    table.add_row("duration", f"{state.elapsed_seconds:.1f}s")
    if state.last_error:
        table.add_row("last error", f"[red]{state.last_error}[/red]")
    console.print(table)


async def _run_migration(
    obj: CliContext,
    options: MigrationOptions,
    activate: bool,
    cleanup: bool,
) -> MigrationState:
    metrics = None
    if obj.metrics_port:
        start_metrics_server(obj.metrics_port)
        metrics = MigrationMetrics()

    async with obj.build_service(options=options, metrics=metrics) as service:
        result = await service.start_migration()
        if not result.started:
            _print_entries(service.get_migration_logs())
            raise click.ClickException(result.error or "Migration did not start")

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, service.abort_migration)
        except NotImplementedError:  # pragma: no cover
            pass  # Windows doesn't support add_signal_handler

        last_seen = 0
        try:
            while service.job.is_running:
                await asyncio.sleep(POLL_INTERVAL_SECONDS)
                entries = service.get_migration_logs(last_seen)
                if entries:
                    _print_entries(entries)
                    last_seen = entries[-1].sequence
            state = await service.job.wait()
            _print_entries(service.get_migration_logs(last_seen))
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:  # pragma: no cover
                pass

        if activate and state.status == MigrationStatus.COMPLETED and not state.failed_objects:
            config = await service.activate_destination()
            console.print(f"[green]✓ Active storage switched to {config.type.value}[/green]")
            if cleanup:
                report = await service.cleanup_source()
                console.print(
                    f"Source cleanup: {report['deleted']} deleted, {report['skipped']} kept (modified after copy), "
                    f"{report['failed']} failed, "
                    f"{report['pruned_dirs']} empty directories removed"
                )
        elif activate:
            console.print("[yellow]Storage type NOT changed due to failures. Fix errors and retry.[/yellow]")

        return state


@click.command()
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Objects copied in parallel")
@click.option("--verify/--no-verify", default=None, help="Stat each object after upload and compare sizes")
@click.option("--activate", is_flag=True, help="Switch to the destination when every object was copied")
@click.option("--cleanup", is_flag=True, help="With --activate, delete the migrated local files afterwards")
@click.pass_obj
def migrate_cmd(obj: CliContext, concurrency: int | None, verify: bool | None, activate: bool, cleanup: bool):
    """
    Copy every object of the active storage into the saved S3 destination.

    Progress is printed as it happens; Ctrl-C requests an abort and waits
    for the objects in flight.
    """
    if cleanup and not activate:
        raise click.UsageError("--cleanup requires --activate")

    options = MigrationOptions.from_env()
    if concurrency is not None:
        options.concurrency = concurrency
    if verify is not None:
        options.verify = verify

    state = asyncio.run(_run_migration(obj, options, activate, cleanup))
    _print_summary(state)
    if state.status != MigrationStatus.COMPLETED or state.failed_objects:
        sys.exit(1)


# ============================================================================
# vaultshift activate
# ============================================================================


@click.command()
@click.pass_obj
def activate_cmd(obj: CliContext):
    """Switch the active storage to the saved S3 settings."""

    async def _activate() -> S3StorageConfig:
        async with obj.build_service() as service:
            saved = await service.get_saved_s3_config()
            return await service.update_storage_config(saved, activate=True)

    try:
        config = asyncio.run(_activate())
    except StorageError as e:
        _fail(e.message)
        return

    console.print(f"[green]✓ Active storage: s3 ({config.endpoint_url}/{config.bucket})[/green]")


# ============================================================================
# Command Registration
# ============================================================================

cli.add_command(config_cmd, name="config")
cli.add_command(test_connection_cmd, name="test-connection")
cli.add_command(list_cmd, name="list")
cli.add_command(migrate_cmd, name="migrate")
cli.add_command(activate_cmd, name="activate")

if __name__ == "__main__":
    cli()
