"""Convert a server capture file into a parquet table."""
from __future__ import annotations

from pathlib import Path

import click

from telemon_core.errors import TelemonError
from telemon_server.capture import device_counts, export_capture


@click.command()
@click.argument("capture", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
def main(capture: Path, out: Path) -> None:
    """Export CAPTURE to OUT (parquet) and print frames per device."""
    try:
        df = export_capture(capture, out)
    except (TelemonError, OSError) as e:
        click.echo(f"FATAL: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"PASS: {len(df)} frames exported to {out}")
    for device_id, count in device_counts(df).items():
        click.echo(f"  device {device_id}: {count}")


if __name__ == "__main__":
    main()
