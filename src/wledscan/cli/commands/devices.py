from __future__ import annotations

import typer
from rich.console import Console

from wledscan.cli.common import (
    build_database,
    devices_table,
    find_device_or_exit,
    load_settings_or_exit,
    load_store_or_exit,
)
from wledscan.core import normalize_address
from wledscan.errors import StoreError
from wledscan.storage import DeviceStore

app = typer.Typer(help="Manage the saved device list", no_args_is_help=True)


def _open_store() -> DeviceStore:
    settings = load_settings_or_exit()
    return load_store_or_exit(build_database(settings))


def _save_or_exit(store: DeviceStore) -> None:
    try:
        store.save()
    except StoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc


@app.command("list")
def list_devices(
    show_all: bool = typer.Option(
        False, "--all", "-a", help="Include hidden devices"
    ),
) -> None:
    """List saved WLED devices, online ones first."""
    store = _open_store()
    console = Console()

    devices = [d for d in store.all() if show_all or not d.is_hidden]
    if not devices:
        console.print("No devices saved.")
        console.print("Use 'wledscan scan', 'wledscan discover' or 'wledscan devices add'.")
        return

    devices.sort(key=lambda d: (not d.is_online, d.display_name.lower()))
    console.print(devices_table(devices))


@app.command("add")
def add_device(
    address: str = typer.Argument(..., help="IP address or hostname"),
    name: str = typer.Option("", "--name", "-n", help="Custom name"),
    hidden: bool = typer.Option(False, "--hidden", help="Hide this device"),
) -> None:
    """Add a device by address."""
    store = _open_store()
    console = Console()

    key = normalize_address(address)
    if not key:
        console.print("[red]Error:[/red] address is empty")
        raise typer.Exit(1)
    if store.find(key) is not None:
        console.print(f"[yellow]![/yellow] Device '{key}' already exists")
        raise typer.Exit(1)

    store.create(
        address=key,
        name=name,
        is_custom_name=bool(name),
        is_hidden=hidden,
    )
    _save_or_exit(store)
    console.print(f"[green]✓[/green] Added '{key}'")


@app.command("remove")
def remove_device(
    address: str = typer.Argument(..., help="Device address"),
) -> None:
    """Remove a saved device."""
    store = _open_store()
    device = find_device_or_exit(store, address)
    store.delete(device)
    _save_or_exit(store)
    Console().print(f"[green]✓[/green] Removed device '{device.address}'")


@app.command("rename")
def rename_device(
    address: str = typer.Argument(..., help="Device address"),
    name: str = typer.Argument(
        ..., help="New name; empty string to use the discovered name again"
    ),
) -> None:
    """Give a device a custom name that discovery will not overwrite."""
    store = _open_store()
    device = find_device_or_exit(store, address)
    store.update(device, name=name, is_custom_name=bool(name))
    _save_or_exit(store)
    Console().print(f"[green]✓[/green] Renamed '{device.address}' → '{device.display_name}'")


def _set_hidden(address: str, hidden: bool) -> None:
    store = _open_store()
    device = find_device_or_exit(store, address)
    store.update(device, is_hidden=hidden)
    _save_or_exit(store)
    state = "hidden" if hidden else "visible"
    Console().print(f"[green]✓[/green] '{device.display_name}' is now {state}")


@app.command("hide")
def hide_device(address: str = typer.Argument(..., help="Device address")) -> None:
    """Hide a device from the default list."""
    _set_hidden(address, True)


@app.command("unhide")
def unhide_device(address: str = typer.Argument(..., help="Device address")) -> None:
    """Show a hidden device again."""
    _set_hidden(address, False)
