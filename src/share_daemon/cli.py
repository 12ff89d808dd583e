"""
Command line interface for the share daemon.

``share-daemon daemon`` runs the supervisor and its RPC server; every other
command is a thin client that calls the running daemon.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .api import ShareDaemon, RESTART_ALL
from .transport.client import RPCClient
from .transport.server import RPCServer
from .utils.config import DaemonConfig, load_config
from .utils.errors import ConfigurationError, RPCError
from .utils.logging import get_logger, setup_logging
from .utils.shutdown import ShutdownCoordinator


logger = get_logger("share-daemon.cli")
console = Console()


async def run_daemon(config: DaemonConfig, autoload: bool = False) -> None:
    """Serve the method table until a shutdown signal arrives."""
    daemon = ShareDaemon(config)
    server = RPCServer(daemon.methods, host=config.rpc.host, port=config.rpc.port)
    await server.start()

    coordinator = ShutdownCoordinator()
    coordinator.register("rpc_server", server.close, timeout=5.0)
    coordinator.register("shares", daemon.shutdown, timeout=config.supervisor.restart_timeout)
    coordinator.install_signal_handlers()

    if autoload:
        outcome = await daemon.methods["load"]()
        if outcome.ok:
            logger.info("snapshot_autoloaded", **outcome.result)
        else:
            logger.warning("snapshot_autoload_failed", error=outcome.error.message)

    try:
        await coordinator.wait()
    finally:
        coordinator.remove_signal_handlers()


async def _call(config: DaemonConfig, method: str, *params: Any) -> Any:
    async with RPCClient(
        host=config.rpc.host,
        port=config.rpc.port,
        timeout=config.rpc.request_timeout
    ) as client:
        return await client.call(method, *params)


def _invoke(ctx: click.Context, method: str, *params: Any) -> Any:
    try:
        return asyncio.run(_call(ctx.obj, method, *params))
    except RPCError as e:
        raise click.ClickException(e.message)


def _render_status(shares) -> None:
    table = Table(title="Shares")
    table.add_column("Share", style="cyan", no_wrap=True)
    table.add_column("State")
    table.add_column("Uptime", justify="right")
    table.add_column("Restarts", justify="right")
    table.add_column("Farmer state")

    styles = {"running": "green", "stopped": "yellow", "errored": "red"}
    for share in shares:
        meta = share.get("meta", {})
        state = share.get("state", "")
        table.add_row(
            share.get("id", ""),
            f"[{styles.get(state, 'white')}]{state}[/]",
            f"{meta.get('uptime_ms', 0) // 1000}s",
            str(meta.get("num_restarts", 0)),
            json.dumps(meta.get("farmer_state") or {}, sort_keys=True),
        )
    console.print(table)


@click.group()
@click.version_option(__version__, prog_name="share-daemon")
@click.option('--config', 'config_paths', multiple=True, type=click.Path(path_type=Path),
              help='Daemon configuration file (JSON, YAML or TOML).')
@click.option('--host', default=None, help='RPC host override.')
@click.option('--port', default=None, type=int, help='RPC port override.')
@click.pass_context
def main(ctx: click.Context, config_paths: Tuple[Path, ...], host: Optional[str], port: Optional[int]):
    """Share Daemon - supervise storage farming shares."""
    overrides = {}
    if host is not None:
        overrides.setdefault("rpc", {})["host"] = host
    if port is not None:
        overrides.setdefault("rpc", {})["port"] = port
    try:
        ctx.obj = load_config(list(config_paths), extra_config=overrides or None)
    except ConfigurationError as e:
        raise click.ClickException(e.message)


@main.command()
@click.option('--autoload', is_flag=True, help='Start the shares recorded in the snapshot.')
@click.pass_obj
def daemon(config: DaemonConfig, autoload: bool):
    """Run the share daemon in the foreground."""
    setup_logging(
        app_name=config.app_name,
        log_level=config.logging.level,
        log_dir=Path(config.logging.directory).expanduser(),
        enable_json=config.logging.enable_json,
        enable_console=config.logging.enable_console,
        enable_sentry=config.logging.enable_sentry,
        sentry_dsn=config.logging.sentry_dsn,
    )
    try:
        asyncio.run(run_daemon(config, autoload=autoload))
    except OSError as e:
        logger.error("daemon_failed", error=str(e))
        sys.exit(1)


@main.command()
@click.argument('config_path', type=click.Path(path_type=Path))
@click.pass_context
def start(ctx: click.Context, config_path: Path):
    """Start a share from its config file."""
    share = _invoke(ctx, "start", str(config_path.expanduser().resolve()))
    click.echo(f"started share {share['id']}")


@main.command()
@click.argument('share_id')
@click.pass_context
def stop(ctx: click.Context, share_id: str):
    """Stop a running share."""
    _invoke(ctx, "stop", share_id)
    click.echo(f"stopping share {share_id}")


@main.command()
@click.argument('share_id', default=RESTART_ALL)
@click.pass_context
def restart(ctx: click.Context, share_id: str):
    """Restart a share, or every share when no id is given."""
    _invoke(ctx, "restart", share_id)
    click.echo("restarted all shares" if share_id == RESTART_ALL else f"restarted share {share_id}")


@main.command()
@click.argument('share_id')
@click.pass_context
def destroy(ctx: click.Context, share_id: str):
    """Stop a share and remove it from the daemon."""
    _invoke(ctx, "destroy", share_id)
    click.echo(f"destroyed share {share_id}")


@main.command()
@click.option('--json', 'as_json', is_flag=True, help='Print raw JSON.')
@click.pass_context
def status(ctx: click.Context, as_json: bool):
    """Show the status of every share."""
    shares = _invoke(ctx, "status")
    if as_json:
        click.echo(json.dumps(shares, indent=2))
    else:
        _render_status(shares)


@main.command()
@click.pass_context
def killall(ctx: click.Context):
    """Destroy every share and terminate the daemon."""
    _invoke(ctx, "killall")
    click.echo("all shares destroyed, daemon exiting")


@main.command()
@click.argument('snapshot_path', required=False, type=click.Path(path_type=Path))
@click.pass_context
def save(ctx: click.Context, snapshot_path: Optional[Path]):
    """Write a snapshot of the running shares."""
    params = [str(snapshot_path.expanduser().resolve())] if snapshot_path else []
    entries = _invoke(ctx, "save", *params)
    click.echo(f"saved {len(entries)} share(s)")


@main.command()
@click.argument('snapshot_path', required=False, type=click.Path(path_type=Path))
@click.pass_context
def load(ctx: click.Context, snapshot_path: Optional[Path]):
    """Start every share recorded in a snapshot."""
    params = [str(snapshot_path.expanduser().resolve())] if snapshot_path else []
    outcome = _invoke(ctx, "load", *params)
    for share_id in outcome["started"]:
        click.echo(f"started share {share_id}")
    for path, message in outcome["failed"].items():
        click.echo(f"failed to start {path}: {message}", err=True)
    if outcome["failed"]:
        ctx.exit(1)


if __name__ == "__main__":
    main()
