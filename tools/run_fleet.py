"""Start several device simulators against one server and wait for them.

Usage:
    python tools/run_fleet.py 1 2 3 [--count N] [--cadence S] [--port P]
"""
from __future__ import annotations

import subprocess
import sys
from typing import Optional

import click


def launch(device_ids: list[int], count: Optional[int], cadence: float, host: str, port: int) -> list[subprocess.Popen]:
    procs = []
    for did in device_ids:
        cmd = [sys.executable, "-m", "telemon_device.cli", str(did),
               "--host", host, "--port", str(port), "--cadence", str(cadence)]
        if count is not None:
            cmd += ["--count", str(count)]
        procs.append(subprocess.Popen(cmd))
    return procs


@click.command()
@click.argument("device_ids", nargs=-1, type=int, required=True)
@click.option("--count", type=int, help="Frames per device")
@click.option("--cadence", default=1.0, show_default=True, type=float)
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8100, show_default=True, type=int)
def main(device_ids: tuple[int, ...], count: Optional[int], cadence: float, host: str, port: int) -> None:
    procs = launch(list(device_ids), count, cadence, host, port)
    failed = 0
    try:
        for did, p in zip(device_ids, procs):
            rc = p.wait()
            print(f"device {did}: exit {rc}")
            failed += rc != 0
    except KeyboardInterrupt:
        for p in procs:
            p.terminate()
        raise SystemExit(130)
    raise SystemExit(1 if failed else 0)


if __name__ == "__main__":
    main()
