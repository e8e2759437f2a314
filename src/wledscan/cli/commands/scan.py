from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from wledscan.cli.common import (
    build_database,
    device_services,
    load_settings_or_exit,
    load_store_or_exit,
)
from wledscan.config import Settings
from wledscan.core import SubnetScanner, detect_local_network
from wledscan.core.probe import probe_address
from wledscan.errors import InvalidNetworkSpec
from wledscan.models import ScanProgress, ScanState
from wledscan.storage import DeviceStore
from wledscan.utils.redaction import Redactor

logger = logging.getLogger(__name__)


async def _scan_with_progress(
    scanner: SubnetScanner, network: str, console: Console
) -> ScanProgress:
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=True,
    ) as bar:
        task_id = bar.add_task(f"Scanning {network}", total=None)

        def _on_progress(snapshot: ScanProgress) -> None:
            bar.update(
                task_id,
                total=snapshot.total or None,
                completed=snapshot.checked,
                description=f"Scanning {network} ({len(snapshot.found)} found)",
            )

        unsubscribe = scanner.subscribe(_on_progress)
        try:
            return await scanner.scan(network)
        finally:
            unsubscribe()


async def run_scan(
    network: str, settings: Settings, store: DeviceStore | None, console: Console
) -> ScanProgress:
    if store is None:
        scanner = SubnetScanner(settings.scanning, probe=probe_address)
        return await _scan_with_progress(scanner, network, console)

    async with device_services(settings, store) as (reconciler, requests):
        scanner = SubnetScanner(settings.scanning, reconciler, probe=probe_address)
        result = await _scan_with_progress(scanner, network, console)
        if result.found:
            console.print("Refreshing found devices...")
        await requests.drain()
        return result


def scan(
    network: str | None = typer.Argument(
        None,
        help=(
            "Network to scan: 192.168.1.0/24, 192.168.1.10-192.168.1.50, "
            "192.168.1.* or a single address. Uses the config default or the "
            "local /24 if omitted."
        ),
    ),
    add: bool = typer.Option(
        True, "--add/--no-add", help="Add found devices to the device list"
    ),
    redact: bool = typer.Option(
        False,
        "--redact",
        help="Redact sensitive values in output",
    ),
) -> None:
    """Scan a network range for WLED devices."""
    console = Console()

    settings = load_settings_or_exit()

    if network is None:
        network = settings.scanning.default_network
        if not network:
            try:
                network = detect_local_network()
            except RuntimeError as exc:
                typer.echo(f"{exc}; pass a network to scan", err=True)
                raise typer.Exit(1) from exc
        console.print(f"Using network: {network}")

    store = load_store_or_exit(build_database(settings)) if add else None

    logger.info(
        "Scan settings: port=%d, batch_size=%d, connect_timeout=%.2fs",
        settings.scanning.port,
        settings.scanning.batch_size,
        settings.scanning.connect_timeout,
    )
    try:
        progress = asyncio.run(run_scan(network, settings, store, console))
    except InvalidNetworkSpec as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan cancelled.[/yellow]")
        raise typer.Exit(130) from None

    if progress.state is ScanState.CANCELLED:
        console.print("[yellow]Scan cancelled.[/yellow]")

    if not progress.found:
        console.print(f"No WLED devices found ({progress.checked} addresses checked).")
        return

    redactor = Redactor(enabled=redact)
    table = Table()
    table.add_column("IP", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Saved As", style="yellow")
    table.add_column("MAC Address")
    table.add_column("Version")
    table.add_column("Brand")

    for device in progress.found:
        saved = store.find(device.address) if store is not None else None
        table.add_row(
            redactor.redact_address(device.address),
            device.name,
            saved.display_name if saved is not None else "",
            redactor.redact_mac(device.info.mac if device.info else None),
            redactor.redact_version(device.version),
            device.brand or "",
        )

    console.print(table)
    console.print(
        f"\n[green]Found {len(progress.found)} device(s)[/green] "
        f"in {progress.checked} addresses"
    )
    if store is not None:
        console.print(f"[green]✓[/green] Saved devices to {store.path}")


def register(app: typer.Typer) -> None:
    app.command()(scan)
