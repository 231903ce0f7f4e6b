"""CLI: commlink serve, commlink check-config"""

import click
from rich.console import Console
from rich.table import Table

from commlink.service import Service

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


def _echo(command, arguments, response):
    response.add_value("Echo", arguments)


@click.command("serve")
@click.option("-c", "--config", "config_path", default="appsettings.json", show_default=True)
@click.option("--url", default=None, help="Relay URL (overrides Transport.Url)")
@click.option("--name", default="commlink", show_default=True, help="Service name")
def serve_cmd(config_path: str, url, name: str):
    """Run a service until interrupted."""
    cfg = _load(config_path)
    service = Service(cfg, _transport_factory(cfg, url), name=name)
    service.register_command("echo", "Echo the arguments back", _echo, shortcut="e")
    service.add_event_handler(lambda event: console.print(f"[dim][{event.label}][/dim]"))
    console.print(f"[cyan]Starting {name} as {cfg.credentials.username} (Ctrl+C to stop)[/cyan]")
    _run(service.run_forever())


@click.command("check-config")
@click.argument("config_path", default="appsettings.json")
def check_config_cmd(config_path: str):
    """Validate a settings file and show the resolved settings."""
    cfg = _load(config_path)
    table = Table(title=f"Settings ({config_path})")
    table.add_column("Option", style="bold")
    table.add_column("Value")
    table.add_row("Credentials.Username", cfg.credentials.username)
    table.add_row("Credentials.Password", "*" * 8 if cfg.credentials.password else "")
    table.add_row("Credentials.Encryption", cfg.credentials.encryption or "none")
    table.add_row("Service.Version", cfg.service.version)
    table.add_row("Service.About", cfg.about("commlink"))
    table.add_row("Transport.Url", cfg.transport.url or "")
    table.add_row("Transport.ReadyTimeout", str(cfg.transport.ready_timeout))
    console.print(table)
