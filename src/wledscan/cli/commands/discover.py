from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from wledscan.cli.common import (
    build_database,
    device_services,
    load_settings_or_exit,
    load_store_or_exit,
)
from wledscan.config import Settings
from wledscan.core import DiscoveryListener
from wledscan.models import DiscoveryResult
from wledscan.storage import DeviceStore
from wledscan.utils.redaction import Redactor


async def run_discovery(
    settings: Settings, store: DeviceStore | None, duration: float
) -> list[DiscoveryResult]:
    if store is None:
        listener = DiscoveryListener(settings.discovery, settings.scanning)
        return await listener.run(duration)

    async with device_services(settings, store) as (reconciler, requests):
        listener = DiscoveryListener(settings.discovery, settings.scanning, reconciler)
        found = await listener.run(duration)
        await requests.drain()
        return found


def discover(
    duration: float | None = typer.Option(
        None,
        "--duration",
        "-d",
        min=0.1,
        help="Seconds to listen for advertisements (default from config)",
    ),
    add: bool = typer.Option(
        True, "--add/--no-add", help="Add verified devices to the device list"
    ),
    redact: bool = typer.Option(
        False, "--redact", help="Redact sensitive values in output"
    ),
) -> None:
    """Discover WLED devices from mDNS advertisements."""
    console = Console()
    settings = load_settings_or_exit()
    listen_for = duration or settings.discovery.duration
    store = load_store_or_exit(build_database(settings)) if add else None

    try:
        with console.status(
            f"Listening for {settings.discovery.service_type} services "
            f"for {listen_for:.0f}s..."
        ):
            found = asyncio.run(run_discovery(settings, store, listen_for))
    except RuntimeError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        console.print("\n[yellow]Discovery stopped.[/yellow]")
        raise typer.Exit(130) from None

    if not found:
        console.print("No WLED devices discovered.")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("IP", style="cyan")
    table.add_column("Service", style="green")
    table.add_column("Device Name")
    table.add_column("Version")
    table.add_column("Brand")
    for device in sorted(found, key=lambda item: (item.name, item.address)):
        table.add_row(
            redactor.redact_address(device.address),
            device.name,
            device.info.name if device.info and device.info.name else "",
            redactor.redact_version(device.version),
            device.brand or "",
        )
    console.print(table)
    console.print(f"\n[green]Discovered {len(found)} device(s)[/green]")


def register(app: typer.Typer) -> None:
    app.command()(discover)
