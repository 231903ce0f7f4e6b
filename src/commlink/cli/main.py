"""
commlink CLI: `commlink` command.

Commands:
  commlink serve                 Run a service with the built-in commands
  commlink check-config PATH     Validate a settings file
  commlink send TARGET CMD ...   One-shot command
  commlink ping TARGET           Ping a service
  commlink status TARGET         Ask a service for its status
"""

import asyncio
import logging
from typing import Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install commlink[cli]")

from commlink import __version__
from commlink.config import ServiceConfig, load_config
from commlink.errors import CommlinkError
from commlink.transport.socketio import SocketIOTransport

console = Console()
log_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, rich_tracebacks=True, show_path=False)],
    )


def _load(config_path: str) -> ServiceConfig:
    try:
        return load_config(config_path)
    except CommlinkError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)


def _transport_factory(cfg: ServiceConfig, url: Optional[str]):
    relay_url = url or cfg.transport.url
    if not relay_url:
        console.print("[red]No relay URL. Set Transport.Url in the settings file or pass --url.[/red]")
        raise SystemExit(1)

    def factory(username: str, password: str) -> SocketIOTransport:
        return SocketIOTransport(relay_url, username, password, ready_timeout=cfg.transport.ready_timeout)
    return factory


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """commlink CLI: command and notification messaging for services."""
    _setup_logging(verbose)


# Register subcommands from separate modules
from commlink.cli.remote import ping_cmd, send_cmd, status_cmd
from commlink.cli.serve import check_config_cmd, serve_cmd

main.add_command(serve_cmd)
main.add_command(check_config_cmd)
main.add_command(send_cmd)
main.add_command(ping_cmd)
main.add_command(status_cmd)


if __name__ == "__main__":
    main()
