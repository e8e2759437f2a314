from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from wledscan.mock_device import run_mock_device


def register(app: typer.Typer) -> None:
    @app.command()
    def mock(
        name: str = typer.Option("WLED Mock", "--name", "-n", help="Device name"),
        port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
        host: str = typer.Option("0.0.0.0", "--host", help="Address to bind"),
        mac: str = typer.Option("aabbccddeeff", "--mac", help="MAC address to report"),
    ) -> None:
        """Run a mock WLED controller for development."""
        console = Console()
        console.print(f"Starting mock WLED device '{name}' on {host}:{port}...")
        console.print("Press Ctrl+C to stop.\n")

        try:
            asyncio.run(run_mock_device(name=name, port=port, host=host, mac=mac))
        except KeyboardInterrupt:
            console.print("\n[green]Mock device stopped.[/green]")
        except OSError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1) from exc
