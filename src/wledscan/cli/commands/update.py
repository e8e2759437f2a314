from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from wledscan.cli.common import (
    build_database,
    device_services,
    find_device_or_exit,
    load_settings_or_exit,
    load_store_or_exit,
)
from wledscan.config import Settings
from wledscan.core import RequestResult, SoftwareUpdateRequest
from wledscan.models import DeviceRecord
from wledscan.storage import DeviceStore


async def push_update(
    settings: Settings, store: DeviceStore, device: DeviceRecord, firmware: Path
) -> RequestResult:
    async with device_services(settings, store) as (_reconciler, requests):
        return await requests.enqueue(device, SoftwareUpdateRequest(firmware=firmware))


def register(app: typer.Typer) -> None:
    @app.command()
    def update(
        address: str = typer.Argument(..., help="Device address"),
        firmware: Path = typer.Argument(
            ..., exists=True, dir_okay=False, readable=True, help="Firmware .bin file"
        ),
    ) -> None:
        """Upload a firmware binary to a saved device."""
        console = Console()
        settings = load_settings_or_exit()
        store = load_store_or_exit(build_database(settings))
        device = find_device_or_exit(store, address)

        with console.status(f"Uploading {firmware.name} to {device.display_name}..."):
            result = asyncio.run(push_update(settings, store, device, firmware))

        if not result.success:
            console.print(f"[red]✗[/red] Update failed: {result.error}")
            raise typer.Exit(1)
        console.print(
            f"[green]✓[/green] {device.display_name} accepted the firmware and will reboot"
        )
