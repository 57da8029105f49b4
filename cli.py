#!/usr/bin/env python3
"""
LAN Peers CLI

Command-line interface for UDP broadcast peer discovery.

Usage:
    lanpeers start               # Run a node and print the peer roster
    lanpeers peers               # Discover for a few seconds and list peers
    lanpeers identity            # Show the identity this process would use
    lanpeers config              # Show the effective configuration
"""

import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler

from config import Config, load_config
from lanpeers.node import PeerNode, NodeConfig
from lanpeers.discovery import PeerRecord, SocketSetupError
from lanpeers.protocol import Identity

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


def peer_table(peers: List[PeerRecord], title: str = "Discovered Peers (LAN)") -> Table:
    """Render a roster as a rich table."""
    now = time.time()
    table = Table(title=f"{title} ({len(peers)})")
    table.add_column("Name", style="cyan")
    table.add_column("IP", style="yellow")
    table.add_column("Token", style="green")
    table.add_column("Last Seen", justify="right")

    for p in peers:
        table.add_row(
            p.display_name,
            p.address,
            p.token,
            f"{p.age(now):.0f}s ago",
        )

    return table


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='JSON config file')
@click.option('--broadcast-port', type=int, default=None, help='Discovery UDP port')
@click.option('--response-port', type=int, default=None, help='Response UDP port')
@click.option('--name', default=None, help='Display name announced to peers')
@click.pass_context
def cli(ctx, verbose, config_path, broadcast_port, response_port, name):
    """LAN Peers - discover other instances on the local network."""
    config = load_config(config_path)

    if broadcast_port is not None:
        config.broadcast_port = broadcast_port
    if response_port is not None:
        config.response_port = response_port
    if name:
        config.display_name = name

    try:
        config.validate()
    except ValueError as e:
        raise click.BadParameter(str(e))

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--api-port', type=int, default=None, help='REST API port')
@click.option('--no-api', is_flag=True, help='Disable REST API')
@click.option('--quiet', is_flag=True, help='Do not print the peer roster')
@click.pass_context
def start(ctx, api_port, no_api, quiet):
    """Start a discovery node."""
    config: Config = ctx.obj['config']
    api_port = api_port or config.api_port

    async def print_status(node: PeerNode):
        while True:
            await asyncio.sleep(config.status_interval)
            peers = node.get_peers()
            if peers:
                console.print(peer_table(peers))
            else:
                console.print("[dim]No peers discovered yet.[/dim]")

    async def run():
        node = PeerNode(NodeConfig.from_config(config))

        try:
            await node.start()
        except SocketSetupError as e:
            console.print(f"[red]Discovery could not start: {e}[/red]")
            sys.exit(1)

        tasks = []
        try:
            console.print(Panel.fit(
                f"[bold green]Peer Node Started[/bold green]\n\n"
                f"Hello [cyan]{node.identity.display_name}[/cyan]! "
                f"Your token is [green]{node.identity.token}[/green]\n"
                f"Discovery Port: [yellow]{config.broadcast_port}[/yellow]\n"
                f"Response Port: [yellow]{config.response_port}[/yellow]",
                title="Node Info"
            ))

            if not quiet:
                tasks.append(asyncio.create_task(print_status(node)))

            if not no_api:
                console.print(f"\n[dim]REST API available at http://localhost:{api_port}[/dim]")
                console.print(f"[dim]API docs at http://localhost:{api_port}/docs[/dim]\n")

                from lanpeers.api import run_api_server
                await run_api_server(node, port=api_port)
            else:
                console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
                while True:
                    await asyncio.sleep(1)

        except (KeyboardInterrupt, asyncio.CancelledError):
            console.print("\n[yellow]Shutting down...[/yellow]")
        finally:
            for task in tasks:
                task.cancel()
            await node.stop()
            console.print("[green]Node stopped[/green]")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


@cli.command()
@click.option('--timeout', '-t', default=None, type=float,
              help='Seconds to listen (defaults to two discovery intervals)')
@click.pass_context
def peers(ctx, timeout):
    """Discover peers for a while and list them."""
    config: Config = ctx.obj['config']
    timeout = timeout or config.discovery_interval * 2

    async def run():
        node = PeerNode(NodeConfig.from_config(config))

        try:
            await node.start()
        except SocketSetupError as e:
            console.print(f"[red]Discovery could not start: {e}[/red]")
            sys.exit(1)

        console.print(f"[dim]Discovering peers for {timeout:.0f}s...[/dim]")
        try:
            await asyncio.sleep(timeout)
            discovered = node.get_peers()
        finally:
            await node.stop()

        if not discovered:
            console.print("[yellow]No peers found[/yellow]")
        else:
            console.print(peer_table(discovered))

    asyncio.run(run())


@cli.command()
@click.pass_context
def identity(ctx):
    """Show a freshly generated identity."""
    config: Config = ctx.obj['config']
    ident = Identity.initialize(config.display_name)

    console.print(Panel.fit(
        f"Name: [cyan]{ident.display_name}[/cyan]\n"
        f"Token: [green]{ident.token}[/green]",
        title="Identity"
    ))


@cli.command('config')
@click.option('--save', 'save_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='Write the effective configuration to a file')
@click.pass_context
def show_config(ctx, save_path: Optional[Path]):
    """Show the effective configuration."""
    config: Config = ctx.obj['config']

    if save_path:
        config.save(save_path)
        console.print(f"[green]✓ Saved to: {save_path}[/green]")
    else:
        console.print_json(json.dumps(config.to_dict()))


if __name__ == '__main__':
    cli()
