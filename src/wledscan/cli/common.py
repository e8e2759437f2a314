from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wledscan.config import (
    Settings,
    data_dir_from_settings,
    get_settings,
    resolve_config_path,
)
from wledscan.core import DeviceReconciler, RequestManagerRegistry, WLEDClient
from wledscan.models import DeviceRecord
from wledscan.storage import Database, DeviceStore
from wledscan.utils.redaction import Redactor


def load_settings_or_exit() -> Settings:
    try:
        return get_settings()
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def resolve_config_path_or_exit(allow_missing: bool = False) -> tuple[Path, bool]:
    try:
        return resolve_config_path(allow_missing=allow_missing)
    except FileNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def build_database(settings: Settings, data_dir: Path | None = None) -> Database:
    path = data_dir or data_dir_from_settings(settings)
    return Database(path)


def load_store_or_exit(db: Database) -> DeviceStore:
    try:
        return db.device_store()
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


def find_device_or_exit(store: DeviceStore, address: str) -> DeviceRecord:
    device = store.find(address)
    if device is None:
        Console().print(f"[yellow]![/yellow] No device at '{address}'")
        raise typer.Exit(1)
    return device


@asynccontextmanager
async def device_services(
    settings: Settings, store: DeviceStore
) -> AsyncIterator[tuple[DeviceReconciler, RequestManagerRegistry]]:
    """Reconciler and request managers sharing one HTTP client."""
    async with WLEDClient(settings.scanning, settings.devices) as client:
        requests = RequestManagerRegistry(store, client, settings.devices)
        try:
            yield DeviceReconciler(store, requests), requests
        finally:
            await requests.close()


def format_color(color: int) -> str:
    return f"#{color:06x}"


def devices_table(devices: list[DeviceRecord], redactor: Redactor | None = None) -> Table:
    redactor = redactor or Redactor(enabled=False)
    table = Table()
    table.add_column("Name", style="green")
    table.add_column("Address", style="cyan")
    table.add_column("Online")
    table.add_column("Power")
    table.add_column("Brightness", justify="right")
    table.add_column("Color")
    table.add_column("Version")

    for device in devices:
        name = device.display_name
        if device.is_hidden:
            name = f"{name} [dim](hidden)[/dim]"
        table.add_row(
            name,
            redactor.redact_address(device.address),
            "[green]yes[/green]" if device.is_online else "[red]no[/red]",
            "on" if device.is_powered_on else "off",
            str(device.brightness),
            format_color(device.color),
            redactor.redact_version(device.info.version if device.info else None),
        )
    return table
