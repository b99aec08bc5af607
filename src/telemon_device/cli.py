"""Telemon Device Simulator command line."""
from __future__ import annotations

import random
import signal
from typing import Optional

import click

from telemon_core.errors import TelemonError
from telemon_core.logs import configure_logging
from telemon_core.protocol import DEVICE_CADENCE_S, MAX_DEVICES, SERVER_HOST, SERVER_PORT
from telemon_device.device import Device, DeviceConfig, validate_device_id


@click.command()
@click.argument("device_id")
@click.option("--host", default=SERVER_HOST, show_default=True, envvar="TELEMON_HOST")
@click.option("--port", default=SERVER_PORT, show_default=True, type=int, envvar="TELEMON_PORT")
@click.option("--max-devices", default=MAX_DEVICES, show_default=True,
              type=click.IntRange(min=1), envvar="TELEMON_MAX_DEVICES")
@click.option("--cadence", default=DEVICE_CADENCE_S, show_default=True,
              type=click.FloatRange(min=0), envvar="TELEMON_CADENCE", help="Seconds between frames")
@click.option("--count", type=click.IntRange(min=1), help="Stop after this many frames")
@click.option("--seed", type=int, help="Seed for the simulated data")
@click.option("-v", "--verbose", is_flag=True)
def main(device_id: str, host: str, port: int, max_devices: int, cadence: float,
         count: Optional[int], seed: Optional[int], verbose: bool) -> None:
    """Simulate device DEVICE_ID streaming telemetry to the server."""
    configure_logging(verbose)
    try:
        did = validate_device_id(device_id, max_devices)
    except TelemonError as e:
        click.echo(f"FATAL: {e}", err=True)
        raise SystemExit(1)

    # Keep running if the server goes away so the write error is reported.
    if hasattr(signal, "SIGPIPE"):
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)

    device = Device(did, DeviceConfig(host=host, port=port, cadence=cadence), rng=random.Random(seed))
    click.echo(f"Device {did} is started.")
    try:
        device.connect()
        device.run(count)
    except TelemonError as e:
        click.echo(f"FATAL: {e}", err=True)
        raise SystemExit(1)
    finally:
        device.close()


if __name__ == "__main__":
    main()
