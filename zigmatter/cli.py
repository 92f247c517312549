"""
zigmatter CLI - inspect how gateway devices translate to Matter devices.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from .bridge.platform import BridgePlatform
from .bridge.rules import TRANSLATION_RULES, rules_for_cluster
from .config import BridgeConfig, DEFAULT_DATA_DIR, get_config
from .gateway.client import GatewayClient
from .gateway.models import parse_devices, parse_groups
from .matter.clusters import ClusterId
from .matter.endpoint import Endpoint, UnknownCommandError, UnknownEndpointError

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        return loop.run_until_complete(coro)


def load_platform(roster_path: str, config: BridgeConfig) -> Tuple[BridgePlatform, List[Tuple[str, str]]]:
    """
    Build a platform from a saved roster.

    The roster file holds either a list of bridge/devices entries or an
    object with "devices" and "groups" lists. Messages the platform would
    publish are collected instead of sent.
    """
    with open(roster_path, 'r') as f:
        data = json.load(f)
    if isinstance(data, list):
        data = {"devices": data}

    published: List[Tuple[str, str]] = []
    gateway = GatewayClient(config.topic, transport=lambda topic, message: published.append((topic, message)))
    platform = BridgePlatform(gateway, config)
    gateway.devices = parse_devices(data.get("devices", []))
    gateway.groups = parse_groups(data.get("groups", []))
    platform.on_devices(gateway.devices)
    platform.on_groups(gateway.groups)
    return platform, published


def attribute_values(graph: Endpoint) -> Dict[Tuple[str, str, str], Any]:
    values = {}
    for endpoint in graph.walk():
        for server in endpoint.clusters.values():
            for attribute, value in server.attributes.items():
                values[(endpoint.name, server.name, attribute)] = value
    return values


def _format(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--data-dir', type=click.Path(), help='Data directory')
@click.pass_context
def main(ctx, verbose, data_dir):
    """zigmatter - Zigbee2MQTT to Matter translation"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['data_dir'] = Path(data_dir) if data_dir else DEFAULT_DATA_DIR
    setup_logging(verbose)


@main.command()
@click.option('--cluster', '-c', help='Only rules writing this cluster (e.g. ON_OFF)')
def rules(cluster: Optional[str]):
    """Show the translation rule table."""

    if cluster:
        try:
            selected = rules_for_cluster(ClusterId[cluster.upper()])
        except KeyError:
            console.print(f"[red]Unknown cluster: {cluster}[/red]")
            sys.exit(1)
    else:
        selected = TRANSLATION_RULES

    table = Table(title="Translation rules")
    table.add_column("Type", style="dim")
    table.add_column("Feature", style="cyan")
    table.add_column("Device type")
    table.add_column("Cluster")
    table.add_column("Attribute")
    table.add_column("Converter", style="dim")

    for rule in selected:
        converter = rule.converter or ("lookup" if rule.lookup else "")
        table.add_row(rule.type or "generic", rule.name, rule.device_type.name,
                      rule.cluster.name, rule.attribute, converter)

    console.print(table)


@main.command()
@click.argument('roster', type=click.Path(exists=True))
@click.pass_context
def inspect(ctx, roster: str):
    """Compile every device and group of a saved roster."""

    config = get_config(ctx.obj['data_dir'])
    platform, _ = load_platform(roster, config)

    if not platform.entities:
        console.print("[dim]Nothing to bridge[/dim]")
        return

    for entity in platform.entities.values():
        console.print(f"\n[bold]{entity.name}[/bold] [dim]({entity.kind})[/dim]")

        table = Table()
        table.add_column("Endpoint", style="cyan")
        table.add_column("Device types")
        table.add_column("Clusters", style="dim")

        for endpoint in entity.graph.walk():
            name = "root" if endpoint is entity.graph else endpoint.name
            types = ", ".join(d.name for d in endpoint.device_types)
            table.add_row(name, types, ", ".join(endpoint.get_all_cluster_server_names()))

        console.print(table)
        if entity.diagnostics:
            skipped = ", ".join(d.property for d in entity.diagnostics)
            console.print(f"  [yellow]Not translated:[/yellow] {skipped}")

    console.print()


@main.command()
@click.argument('roster', type=click.Path(exists=True))
@click.argument('name')
@click.argument('payload', type=click.Path(exists=True))
@click.pass_context
def replay(ctx, roster: str, name: str, payload: str):
    """Apply a state payload to one entity and show what changed."""

    config = get_config(ctx.obj['data_dir'])
    platform, _ = load_platform(roster, config)

    entity = platform.get_entity(name)
    if entity is None:
        console.print(f"[red]Entity not bridged: {name}[/red]")
        sys.exit(1)

    with open(payload, 'r') as f:
        message = json.load(f)

    before = attribute_values(entity.graph)
    writes = entity.on_state_message(message)
    after = attribute_values(entity.graph)

    console.print(f"\n[bold]{name}[/bold]: {writes} attribute(s) changed\n")
    if not writes:
        return

    table = Table()
    table.add_column("Endpoint", style="cyan")
    table.add_column("Cluster")
    table.add_column("Attribute")
    table.add_column("Before", style="dim")
    table.add_column("After", style="green")

    for key, value in after.items():
        if before.get(key) != value:
            endpoint, cluster, attribute = key
            table.add_row(endpoint, cluster, attribute, _format(before.get(key)), _format(value))

    console.print(table)


@main.command()
@click.argument('roster', type=click.Path(exists=True))
@click.argument('name')
@click.argument('command')
@click.option('--args', '-a', help='JSON command arguments')
@click.option('--endpoint', '-e', help='Child endpoint name')
@click.pass_context
def invoke(ctx, roster: str, name: str, command: str, args: Optional[str], endpoint: Optional[str]):
    """Invoke a Matter command on an entity and show the gateway messages."""

    config = get_config(ctx.obj['data_dir'])
    platform, published = load_platform(roster, config)

    entity = platform.get_entity(name)
    if entity is None:
        console.print(f"[red]Entity not bridged: {name}[/red]")
        sys.exit(1)

    try:
        target = entity.graph.get_child_endpoint(endpoint) if endpoint else entity.graph
    except UnknownEndpointError as e:
        console.print(f"[red]{e.args[0]}[/red]")
        sys.exit(1)

    request = json.loads(args) if args else {}

    async def run():
        await target.invoke_command(command, request)
        await asyncio.sleep(entity.debouncer.debounce_seconds + 0.05)
        entity.destroy()

    try:
        run_async(run())
    except UnknownCommandError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if not published:
        console.print("[dim]No message published[/dim]")
        return
    for topic, message in published:
        console.print(f"[cyan]{topic}[/cyan] {message}")


@main.command('config')
@click.option('--json', 'as_json', is_flag=True, help='Output raw JSON')
@click.pass_context
def show_config(ctx, as_json: bool):
    """Show the effective configuration."""

    config = get_config(ctx.obj['data_dir'])
    data = config.to_dict()
    if data.get("password"):
        data["password"] = "********"

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"\n[bold]Configuration[/bold] [dim]{config.config_path}[/dim]\n")

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    timing = data.pop("timing")
    for key, value in data.items():
        table.add_row(key, json.dumps(value) if isinstance(value, (list, dict)) else str(value))
    for key, value in timing.items():
        table.add_row(f"timing.{key}", str(value))

    console.print(table)
    console.print()


if __name__ == "__main__":
    main()
