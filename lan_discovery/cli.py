#!/usr/bin/env python3
"""
LAN Discovery CLI

Command-line interface for advertising and finding servers on the LAN.

Usage:
    lan-discovery advertise              # Answer discovery requests
    lan-discovery discover               # Look for servers
    lan-discovery handshake              # Show the application handshake
    lan-discovery run                    # Probe (and advertise if configured)
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import Config, load_config
from .discovery import ServerResponse
from .errors import DiscoveryError
from .lan import LanDiscovery
from .wire import AppIdentity, format_handshake

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def print_server(server: ServerResponse):
    host, port = server.endpoint
    console.print(
        f"[green]Found[/green] server [cyan]{server.server_id}[/cyan] "
        f"from [yellow]{host}:{port}[/yellow] -> {', '.join(server.uri)}"
    )


def servers_table(servers: List[ServerResponse]) -> Table:
    table = Table(title="Discovered Servers")
    table.add_column("Server ID", style="cyan")
    table.add_column("Address", style="yellow")
    table.add_column("URI")

    for s in servers:
        host, port = s.endpoint
        table.add_row(str(s.server_id), f"{host}:{port}", ", ".join(s.uri))

    return table


async def wait_forever():
    while True:
        await asyncio.sleep(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), default=None,
              help='JSON config file')
@click.option('--port', type=int, default=None, help='Discovery UDP port')
@click.option('--broadcast-address', default=None, help='Address requests are sent to')
@click.pass_context
def cli(ctx, verbose, config_path, port, broadcast_address):
    """LAN Discovery - find servers on the local network."""
    config = load_config(Path(config_path) if config_path else None)
    if port is not None:
        config.port = port
    if broadcast_address:
        config.broadcast_address = broadcast_address

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--uri', 'uris', multiple=True, help='URI to advertise (repeatable)')
@click.pass_context
def advertise(ctx, uris):
    """Answer discovery requests until interrupted."""
    config: Config = ctx.obj['config']

    async def run():
        async with LanDiscovery(config, uris=list(uris) or None) as lan:
            await lan.start_advertising()

            console.print(Panel.fit(
                f"[bold green]Advertising[/bold green]\n\n"
                f"Server ID: [cyan]{lan.server_id}[/cyan]\n"
                f"Port: [yellow]{config.port}[/yellow]\n"
                f"Handshake: [yellow]{format_handshake(lan.handshake)}[/yellow]\n"
                f"URI: [blue]{', '.join(lan.uris)}[/blue]",
                title="Server Info"
            ))
            console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
            await wait_forever()

    _run(run)


@cli.command()
@click.option('--timeout', '-t', default=5.0, show_default=True, help='Seconds to listen')
@click.pass_context
def discover(ctx, timeout):
    """Look for servers and list them."""
    config: Config = ctx.obj['config']

    async def run():
        async with LanDiscovery(config) as lan:
            lan.on_server_found(print_server)
            console.print(f"[dim]Discovering servers for {timeout}s...[/dim]")
            servers = await lan.discover(timeout)

        if not servers:
            console.print("[yellow]No servers found[/yellow]")
        else:
            console.print(servers_table(servers))

    _run(run)


@cli.command()
@click.option('--name', default=None, help='Application name')
@click.option('--company', default=None, help='Company name')
@click.option('--app-version', 'app_version', default=None, help='Application version')
@click.pass_context
def handshake(ctx, name, company, app_version):
    """Show the handshake for an application identity."""
    config: Config = ctx.obj['config']

    identity = AppIdentity(
        name=name if name is not None else config.app_name,
        company=company if company is not None else config.app_company,
        version=app_version if app_version is not None else config.app_version,
        handshake_override=None if (name or company or app_version) else config.handshake,
    )
    value = identity.handshake

    console.print(f"Identity:  [cyan]{identity}[/cyan]")
    console.print(f"Handshake: [green]{value}[/green] ({format_handshake(value)})")


@cli.command()
@click.pass_context
def run(ctx):
    """Probe for servers, advertising too if auto_advertise is set."""
    config: Config = ctx.obj['config']

    async def main():
        async with LanDiscovery(config) as lan:
            lan.on_server_found(print_server)
            if config.auto_advertise:
                await lan.start_advertising()
                console.print(f"[dim]Advertising server {lan.server_id}[/dim]")
            await lan.start_discovery()
            console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
            await wait_forever()

    _run(main)


def _run(coro_fn):
    """Run a command coroutine, turning discovery errors into exit codes."""
    try:
        asyncio.run(coro_fn())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
    except DiscoveryError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)


def main(argv: Optional[List[str]] = None):
    cli(args=argv)


if __name__ == '__main__':
    main()
