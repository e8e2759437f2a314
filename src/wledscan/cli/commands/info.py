from __future__ import annotations

import typer
from rich.console import Console

from wledscan.cli.common import (
    build_database,
    load_settings_or_exit,
    load_store_or_exit,
    resolve_config_path_or_exit,
)


def register(app: typer.Typer) -> None:
    @app.command()
    def info() -> None:
        """Show data directory info and device stats."""
        settings = load_settings_or_exit()
        db = build_database(settings)
        store = load_store_or_exit(db)
        devices = store.all()

        config_path, config_exists = resolve_config_path_or_exit(allow_missing=True)

        console = Console()

        console.print("[bold]wledscan Info[/bold]\n")
        console.print(f"Data directory: {db.path}")
        console.print(f"Device list: {db.devices_path}")
        console.print(f"Config file: {config_path if config_exists else 'defaults'}")

        console.print("\n[bold]Configuration[/bold]")
        console.print(f"Default network: {settings.scanning.default_network or 'auto'}")
        console.print(f"Port: {settings.scanning.port}")
        console.print(f"Connect timeout: {settings.scanning.connect_timeout}s")
        console.print(f"Batch size: {settings.scanning.batch_size}")
        console.print(f"mDNS service: {settings.discovery.service_type}")

        console.print("\n[bold]Statistics[/bold]")
        console.print(f"Saved devices: {len(devices)}")
        if devices:
            online = sum(1 for device in devices if device.is_online)
            hidden = sum(1 for device in devices if device.is_hidden)
            console.print(f"Online: {online}")
            console.print(f"Hidden: {hidden}")
