"""Telemon Monitoring Server command line."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from telemon_core.errors import TelemonError, WaitTimeout
from telemon_core.logs import configure_logging
from telemon_core.protocol import LISTEN_BACKLOG, MAX_DEVICES, SERVER_HOST, SERVER_PORT, WAIT_TIMEOUT_MS
from telemon_server.capture import CaptureWriter
from telemon_server.server import MonitoringServer, ServerConfig


def serve(config: ServerConfig, capture_path: Optional[Path] = None) -> None:
    """Bind, listen and run the loop. Only returns by raising."""
    capture = CaptureWriter(capture_path) if capture_path is not None else None
    server = MonitoringServer(config, capture=capture)
    try:
        server.bind()
        server.listen()
        server.run()
    finally:
        server.close()
        if capture is not None:
            capture.close()


@click.command()
@click.option("--host", default=SERVER_HOST, show_default=True, envvar="TELEMON_HOST")
@click.option("--port", default=SERVER_PORT, show_default=True, type=int, envvar="TELEMON_PORT")
@click.option("--max-devices", default=MAX_DEVICES, show_default=True,
              type=click.IntRange(min=1), envvar="TELEMON_MAX_DEVICES")
@click.option("--backlog", default=LISTEN_BACKLOG, show_default=True,
              type=click.IntRange(min=1), envvar="TELEMON_BACKLOG")
@click.option("--wait-timeout", default=WAIT_TIMEOUT_MS / 1000, show_default=True,
              type=click.FloatRange(min=0), envvar="TELEMON_WAIT_TIMEOUT",
              help="Seconds without activity before the server exits; 0 waits forever")
@click.option("--capture", "capture_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Append every counted frame to this capture file")
@click.option("-v", "--verbose", is_flag=True)
def main(host: str, port: int, max_devices: int, backlog: int, wait_timeout: float,
         capture_path: Optional[Path], verbose: bool) -> None:
    """Run the monitoring server."""
    configure_logging(verbose)
    config = ServerConfig(
        host=host,
        port=port,
        max_devices=max_devices,
        backlog=backlog,
        # Only an explicit 0 disables the timeout.
        wait_timeout_ms=max(1, round(wait_timeout * 1000)) if wait_timeout > 0 else 0,
    )
    try:
        serve(config, capture_path)
    except WaitTimeout as e:
        click.echo(f"Poll timeout. Stop running Monitor Server. ({e})", err=True)
        raise SystemExit(1)
    except (TelemonError, OSError) as e:
        click.echo(f"FATAL: {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
