#!/usr/bin/env python3
"""
Command-line interface for Storefront Admin.

Provides permission lookups, trash inspection, retention sweeps and
exports for the storefront admin console.
"""

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Coroutine, List, Optional, TypeVar

import click
import pandas as pd  # type: ignore[import-untyped]
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .access_control import (
    ALL_ACTIONS,
    ALL_TABS,
    PermissionGate,
    PermissionTable,
    load_permission_table,
    set_role_permission,
)
from .config import AdminConfig, get_config, set_config
from .lifecycle import SYSTEM_ACTOR, EntityKind, LifecycleService, days_remaining
from .lifecycle.retention import parse_timestamp
from .store import CachedEntityStore, SQLEntityStore

console = Console()

T = TypeVar("T")

KIND_CHOICE = click.Choice([kind.value for kind in EntityKind])


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)


async def _open_store(database_url: Optional[str]) -> SQLEntityStore:
    store = SQLEntityStore(database_url or get_config().database_url)
    await store.initialize()
    return store


async def _open_service(database_url: Optional[str]) -> LifecycleService:
    config = get_config()
    backend = await _open_store(database_url)
    store = CachedEntityStore(backend, enable_cache=config.cache_enabled)
    return LifecycleService(store, settings=backend, config=config)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON or YAML configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """Storefront Admin - trash lifecycle and permission tools."""
    if config_file:
        try:
            set_config(AdminConfig.from_file(config_file))
        except Exception as e:
            console.print(f"[red]Error loading configuration: {e}[/red]")
            sys.exit(1)

    logging.basicConfig(
        level=get_config().log_level.value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Storefront Admin[/bold blue] v{__version__}\n"
                "[dim]Trash lifecycle and permission tools[/dim]\n\n"
                "Use [bold]storefront-admin --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect console configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config_dict = get_config().to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml  # type: ignore[import-untyped]

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Storefront Admin Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories = {
                "General": ["application_name", "environment", "log_level"],
                "Persistence": ["database_url", "cache_enabled"],
                "Trash": ["default_retention_days", "log_retention_setting_key"],
                "Pages": ["homepage_setting_key", "default_homepage_slug"],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if isinstance(value, bool):
                        value = "✓" if value else "✗"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)


@cli.group()
def permissions() -> None:
    """Role and permission lookups."""
    pass


@permissions.command("check")
@click.argument("role")
@click.argument("key")
@click.option("--database-url", help="Read stored role permissions from this database")
def permissions_check(role: str, key: str, database_url: Optional[str]) -> None:
    """Check whether ROLE holds KEY (a tab or an action)."""
    if database_url:
        try:

            async def _load() -> PermissionTable:
                return await load_permission_table(await _open_store(database_url))

            gate = PermissionGate(run_sync(_load()))
        except Exception as e:
            console.print(f"[red]Error loading permissions: {e}[/red]")
            sys.exit(1)
    else:
        gate = PermissionGate()

    if gate.can(role, key):
        console.print(f"[green]✓[/green] {role} may use {key}")
    else:
        console.print(f"[red]✗[/red] {role} may not use {key}")
        sys.exit(1)


@permissions.command("set")
@click.argument("role")
@click.argument("permission", type=click.Choice(list(ALL_ACTIONS)))
@click.option("--enable/--disable", default=True, help="Grant or revoke the action")
@click.option("--database-url", help="Override the configured database URL")
def permissions_set(
    role: str, permission: str, enable: bool, database_url: Optional[str]
) -> None:
    """Grant or revoke PERMISSION for a non-admin ROLE."""
    try:

        async def _set() -> None:
            await set_role_permission(
                await _open_store(database_url), role, permission, enable
            )

        run_sync(_set())
    except Exception as e:
        console.print(f"[red]Error updating permissions: {e}[/red]")
        sys.exit(1)

    verb = "granted to" if enable else "revoked from"
    console.print(f"[green]✓[/green] {permission} {verb} {role}")


@permissions.command("matrix")
def permissions_matrix() -> None:
    """Show the role to tab matrix."""
    gate = PermissionGate()
    roles = gate.table.roles

    table = Table(title="Role Permissions", show_header=True)
    table.add_column("Tab", style="cyan")
    for role in roles:
        table.add_column(role, justify="center")

    for tab in ALL_TABS:
        marks = [
            "[green]✓[/green]" if gate.has_permission(role, tab) else "[dim]·[/dim]"
            for role in roles
        ]
        table.add_row(tab, *marks)

    console.print(table)


@cli.group()
def trash() -> None:
    """Trash inspection and housekeeping."""
    pass


@trash.command("list")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--database-url", help="Override the configured database URL")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def trash_list(kind: str, database_url: Optional[str], format: str) -> None:
    """List trashed records of KIND with the days left before purge."""
    try:

        async def _list() -> List[Any]:
            service = await _open_service(database_url)
            return await service.list_trashed(kind)

        records = run_sync(_list())

        if not records:
            console.print(f"[yellow]Trash is empty for {kind}[/yellow]")
            return

        if format == "json":
            console.print_json(data=records, default=str)
            return

        table = Table(title=f"Trash: {kind} ({len(records)})")
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Deleted", style="yellow")
        table.add_column("Days left", justify="right")

        for record in records:
            name = (
                record.get("title")
                or record.get("full_name")
                or record.get("action")
                or ""
            )
            deleted = parse_timestamp(record.get("deleted_at"))
            left = record["days_remaining"]
            style = "red" if left <= 3 else "magenta"
            table.add_row(
                str(record.get("id", "")),
                str(name),
                deleted.strftime("%Y-%m-%d %H:%M") if deleted else "",
                f"[{style}]{left}[/{style}]",
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]Error listing trash: {e}[/red]")
        sys.exit(1)


@trash.command("purge")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--database-url", help="Override the configured database URL")
def trash_purge(kind: str, database_url: Optional[str]) -> None:
    """Permanently remove trashed records of KIND whose retention has expired."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task(f"Purging expired {kind} records...", total=None)

        try:

            async def _purge() -> Any:
                service = await _open_service(database_url)
                return await service.purge_expired(kind, SYSTEM_ACTOR)

            result = run_sync(_purge())
            progress.stop()

        except Exception as e:
            progress.stop()
            console.print(f"[red]Error purging trash: {e}[/red]")
            sys.exit(1)

    console.print(f"[green]✓[/green] Purged {result.success_count} {kind} record(s)")
    if result.failed:
        for failure in result.failed:
            console.print(f"  [red]• {failure.entity_id}: {failure.error}[/red]")
        sys.exit(1)


@trash.command("empty")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--database-url", help="Override the configured database URL")
@click.confirmation_option(prompt="Permanently delete every trashed record?")
def trash_empty(kind: str, database_url: Optional[str]) -> None:
    """Permanently remove every trashed record of KIND."""
    try:

        async def _empty() -> Any:
            service = await _open_service(database_url)
            return await service.empty_trash(kind, SYSTEM_ACTOR)

        result = run_sync(_empty())

    except Exception as e:
        console.print(f"[red]Error emptying trash: {e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓[/green] Deleted {result.success_count} {kind} record(s)")
    if result.failed:
        for failure in result.failed:
            console.print(f"  [red]• {failure.entity_id}: {failure.error}[/red]")
        sys.exit(1)


@trash.command("export")
@click.argument("kind", type=KIND_CHOICE)
@click.option("--output", type=click.Path(), required=True, help="Output file path")
@click.option("--format", type=click.Choice(["json", "csv", "excel"]), default="csv")
@click.option("--database-url", help="Override the configured database URL")
def trash_export(
    kind: str, output: str, format: str, database_url: Optional[str]
) -> None:
    """Export trashed records of KIND for review before purge."""
    try:

        async def _list() -> List[Any]:
            service = await _open_service(database_url)
            return await service.list_trashed(kind)

        records = run_sync(_list())
        df = pd.DataFrame(records)

        # Excel cannot store timezone aware datetimes
        for column in df.columns:
            if isinstance(df[column].dtype, pd.DatetimeTZDtype):
                df[column] = df[column].dt.tz_localize(None)

        output_path = Path(output)
        if format == "json":
            df.to_json(output_path, orient="records", date_format="iso", indent=2)
        elif format == "excel":
            df.to_excel(output_path, index=False, engine="openpyxl")
        else:  # csv
            df.to_csv(output_path, index=False)

        console.print(
            f"[green]✓ Exported {len(records)} {kind} record(s) to {output_path}[/green]"
        )

    except Exception as e:
        console.print(f"[red]Error exporting trash: {e}[/red]")
        sys.exit(1)


@cli.group()
def retention() -> None:
    """Retention window calculations."""
    pass


@retention.command("days")
@click.argument("deleted_at")
@click.option(
    "--retention-days", type=click.IntRange(min=1), help="Retention window in days"
)
@click.option("--now", "now_value", help="Reference time (ISO 8601)")
def retention_days(
    deleted_at: str, retention_days: Optional[int], now_value: Optional[str]
) -> None:
    """Show the days left before a record trashed at DELETED_AT may be purged."""
    try:
        window = (
            retention_days
            if retention_days is not None
            else get_config().default_retention_days
        )
        now: Optional[datetime] = parse_timestamp(now_value) if now_value else None
        left = days_remaining(deleted_at, window, now)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if left == 0:
        console.print(f"[yellow]0 days left[/yellow] (window {window} days, purge due)")
    else:
        console.print(f"[green]{left} days left[/green] (window {window} days)")


if __name__ == "__main__":
    cli()
