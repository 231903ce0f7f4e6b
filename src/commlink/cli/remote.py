"""CLI: commlink send, commlink ping, commlink status"""

import json

import click
from rich.console import Console
from rich.table import Table

from commlink.client import ServiceClient
from commlink.errors import CommandError, CommlinkError

console = Console()


def _load(config_path):
    from commlink.cli.main import _load
    return _load(config_path)


def _transport_factory(cfg, url):
    from commlink.cli.main import _transport_factory
    return _transport_factory(cfg, url)


def _run(coro):
    from commlink.cli.main import _run
    return _run(coro)


def _client(config_path, url, timeout) -> ServiceClient:
    cfg = _load(config_path)
    factory = _transport_factory(cfg, url)
    try:
        transport = factory(cfg.credentials.username, cfg.password())
    except CommlinkError as e:
        _fail(e)
    return ServiceClient(transport, request_timeout=timeout)


async def _with_client(client: ServiceClient, request):
    await client.connect()
    try:
        return await request(client)
    finally:
        await client.disconnect()


def _remote_options(fn):
    fn = click.option("-c", "--config", "config_path", default="appsettings.json", show_default=True)(fn)
    fn = click.option("--url", default=None, help="Relay URL (overrides Transport.Url)")(fn)
    fn = click.option("-t", "--timeout", default=10.0, type=float, show_default=True)(fn)
    return fn


def _fail(e: Exception):
    if isinstance(e, CommandError):
        console.print(f"[red]{e.code}: {e}[/red]")
    else:
        console.print(f"[red]{e}[/red]")
    raise SystemExit(1)


@click.command("send")
@click.argument("target")
@click.argument("command")
@click.argument("args", nargs=-1)
@_remote_options
@click.option("--json-output", "--json", is_flag=True)
def send_cmd(target, command, args, config_path, url, timeout, json_output):
    """Send one command and print the response values."""
    client = _client(config_path, url, timeout)
    try:
        response = _run(_with_client(client, lambda c: c.command(target, command, *args)))
    except (CommlinkError, TimeoutError) as e:
        _fail(e)
    if json_output:
        click.echo(json.dumps(response.values))
        return
    table = Table(title=f"{target}: {response.values.get('OriginalCommand', command)}")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in response.values.items():
        table.add_row(key, value if isinstance(value, str) else json.dumps(value))
    console.print(table)


@click.command("ping")
@click.argument("target")
@_remote_options
def ping_cmd(target, config_path, url, timeout):
    """Ping a service."""
    client = _client(config_path, url, timeout)
    try:
        _run(_with_client(client, lambda c: c.ping(target)))
    except (CommlinkError, TimeoutError) as e:
        _fail(e)
    console.print(f"[green]{target} is alive[/green]")


@click.command("status")
@click.argument("target")
@_remote_options
def status_cmd(target, config_path, url, timeout):
    """Show a service's status."""
    client = _client(config_path, url, timeout)
    try:
        values = _run(_with_client(client, lambda c: c.status(target)))
    except (CommlinkError, TimeoutError) as e:
        _fail(e)
    console.print(f"[bold]{target}[/bold] status {values.get('StatusCode')}: {values.get('StatusMessage', '')}")
    details = values.get("StatusDetails") or {}
    for key, value in details.items():
        console.print(f"  {key}: {value}")
    console.print(f"[dim]server time {values.get('ServerTime')}[/dim]")
