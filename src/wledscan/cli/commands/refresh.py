from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from wledscan.cli.common import (
    build_database,
    device_services,
    devices_table,
    find_device_or_exit,
    load_settings_or_exit,
    load_store_or_exit,
)
from wledscan.config import Settings
from wledscan.models import DeviceRecord
from wledscan.storage import DeviceStore


async def refresh_devices(
    settings: Settings, store: DeviceStore, devices: list[DeviceRecord]
) -> None:
    async with device_services(settings, store) as (_reconciler, requests):
        requests.refresh_all(devices)
        await requests.drain()


def register(app: typer.Typer) -> None:
    @app.command()
    def refresh(
        address: str | None = typer.Argument(
            None, help="Device to refresh; all saved devices if omitted"
        ),
    ) -> None:
        """Pull current state from saved devices."""
        console = Console()
        settings = load_settings_or_exit()
        store = load_store_or_exit(build_database(settings))

        if address is not None:
            devices = [find_device_or_exit(store, address)]
        else:
            devices = store.all()
        if not devices:
            console.print("No devices saved.")
            return

        with console.status(f"Refreshing {len(devices)} device(s)..."):
            asyncio.run(refresh_devices(settings, store, devices))

        console.print(devices_table(devices))
        online = sum(1 for device in devices if device.is_online)
        console.print(f"\n{online}/{len(devices)} device(s) online")
