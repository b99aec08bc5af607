"""Frame capture: an append-only log of every counted telemetry frame.

The capture is evidence only. Counters are never rebuilt from it.
"""
from __future__ import annotations

import os
import struct
import time
from pathlib import Path
from typing import BinaryIO, Iterator, Optional
from warnings import warn

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from telemon_core.errors import CaptureError
from telemon_core.protocol import (
    CAPTURE_FILE_HEADER_LEN,
    CAPTURE_HEADER_FMT,
    CAPTURE_HEADER_LEN,
    CAPTURE_VERSION,
    FRAME_LEN,
    MAGIC_CAPTURE_FILE,
    MAGIC_CAPTURE_REC,
)
from telemon_core.records import decode_frame

CAPTURE_SCHEMA = pa.schema(
    [
        ("seq", pa.int64()),
        ("received_at", pa.float64()),
        ("device_id", pa.int32()),
        ("device_name", pa.string()),
        ("data", pa.int32()),
    ]
)


class CaptureWriter:
    """Appends [header | raw frame] records after a file magic."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.seq = 0
        self.f: BinaryIO = open(self.path, "wb")
        self.f.write(MAGIC_CAPTURE_FILE)
        self.f.flush()

    def append(self, frame_bytes: bytes, received_at: Optional[float] = None) -> int:
        if len(frame_bytes) != FRAME_LEN:
            raise ValueError(f"capture record needs a {FRAME_LEN}-byte frame, got {len(frame_bytes)}")
        if received_at is None:
            received_at = time.time()
        header = struct.pack(CAPTURE_HEADER_FMT, MAGIC_CAPTURE_REC, CAPTURE_VERSION, self.seq, received_at)
        self.f.write(header + frame_bytes)
        # Records must survive a fatal exit of the loop.
        self.f.flush()
        seq = self.seq
        self.seq += 1
        return seq

    def close(self) -> None:
        if not self.f.closed:
            self.f.flush()
            os.fsync(self.f.fileno())
            self.f.close()

    def __enter__(self) -> "CaptureWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def scan_capture(path: Path) -> Iterator[dict]:
    """Yield one row per complete record. A torn tail record is warned about and skipped."""
    with open(path, "rb") as f:
        if f.read(CAPTURE_FILE_HEADER_LEN) != MAGIC_CAPTURE_FILE:
            raise CaptureError(f"{path}: invalid capture file header")

        while True:
            start_off = f.tell()
            header = f.read(CAPTURE_HEADER_LEN)

            # Clean EOF
            if len(header) == 0:
                break

            if len(header) < CAPTURE_HEADER_LEN:
                warn(f"Truncated capture header at offset {start_off}")
                break

            magic, ver, seq, received_at = struct.unpack(CAPTURE_HEADER_FMT, header)
            if magic != MAGIC_CAPTURE_REC:
                raise CaptureError(f"bad record magic {magic!r} at offset {start_off}")
            if ver != CAPTURE_VERSION:
                raise CaptureError(f"record version {int(ver)} at offset {start_off}")

            payload = f.read(FRAME_LEN)
            if len(payload) != FRAME_LEN:
                warn(f"Torn capture record {int(seq)} at offset {start_off}")
                break

            frame = decode_frame(payload)
            yield {
                "seq": int(seq),
                "received_at": float(received_at),
                "device_id": frame.device_id,
                "device_name": frame.device_name,
                "data": frame.data,
            }


def capture_to_frame(path: Path) -> pd.DataFrame:
    df = pd.DataFrame(list(scan_capture(path)), columns=CAPTURE_SCHEMA.names)
    return df.astype({"seq": "int64", "received_at": "float64", "device_id": "int32", "data": "int32"})


def export_capture(path: Path, out_path: Path) -> pd.DataFrame:
    """Write the capture as a parquet table and return it."""
    df = capture_to_frame(path)
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    table = pa.Table.from_pandas(df, schema=CAPTURE_SCHEMA, preserve_index=False)
    pq.write_table(table, out_path)
    return df


def device_counts(df: pd.DataFrame) -> pd.Series:
    """Frames per device id, ordered by id."""
    return df.groupby("device_id").size().sort_index()
