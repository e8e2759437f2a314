from __future__ import annotations

from typing import Annotated

import typer

from wledscan.utils.logging import setup_logging

from .commands import config as config_cmd
from .commands import devices as devices_cmd
from .commands.discover import register as register_discover
from .commands.info import register as register_info
from .commands.init import register as register_init
from .commands.mock import register as register_mock
from .commands.refresh import register as register_refresh
from .commands.scan import register as register_scan
from .commands.update import register as register_update

app = typer.Typer(
    help="wledscan - find and manage WLED controllers on your network",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")
app.add_typer(devices_cmd.app, name="devices")

register_init(app)
register_scan(app)
register_discover(app)
register_refresh(app)
register_update(app)
register_info(app)
register_mock(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log every probe and request (overrides LOGLEVEL)"),
    ] = False,
) -> None:
    """wledscan CLI."""
    setup_logging("DEBUG" if debug else None)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"wledscan version {get_version('wledscan')}")
        raise typer.Exit()
