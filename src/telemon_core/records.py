"""Telemon fixed-layout wire records."""
from __future__ import annotations

import socket
import struct
from dataclasses import dataclass

from telemon_core.errors import ShortRecord, Truncated
from telemon_core.protocol import (
    ACK_FMT,
    ACK_LEN,
    DEVICE_NAME_LEN,
    FRAME_FMT,
    FRAME_LEN,
    INT32_MAX,
    INT32_MIN,
)


@dataclass(frozen=True)
class TelemetryFrame:
    device_id: int
    device_name: str
    data: int


@dataclass(frozen=True)
class Ack:
    status: int


def _check_int32(name: str, value: int) -> None:
    if not INT32_MIN <= value <= INT32_MAX:
        raise ValueError(f"{name} {value} does not fit a signed 32-bit field")


def encode_frame(frame: TelemetryFrame) -> bytes:
    """Pack a telemetry frame into exactly FRAME_LEN bytes."""
    _check_int32("device_id", frame.device_id)
    _check_int32("data", frame.data)
    name = frame.device_name.encode("utf-8")
    # Sender must leave room for the terminating zero byte.
    if len(name) >= DEVICE_NAME_LEN or b"\x00" in name:
        raise ValueError(f"device name {frame.device_name!r} does not fit {DEVICE_NAME_LEN - 1} bytes")
    return struct.pack(FRAME_FMT, frame.device_id, name, frame.data)


def decode_frame(buf: bytes) -> TelemetryFrame:
    """Unpack the first FRAME_LEN bytes of buf."""
    if len(buf) < FRAME_LEN:
        raise ShortRecord(f"telemetry frame needs {FRAME_LEN} bytes, got {len(buf)}")
    device_id, raw_name, data = struct.unpack_from(FRAME_FMT, buf)
    name = raw_name.split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    return TelemetryFrame(device_id=device_id, device_name=name, data=data)


def encode_ack(ack: Ack) -> bytes:
    _check_int32("status", ack.status)
    return struct.pack(ACK_FMT, ack.status)


def decode_ack(buf: bytes) -> Ack:
    if len(buf) < ACK_LEN:
        raise ShortRecord(f"acknowledgement needs {ACK_LEN} bytes, got {len(buf)}")
    (status,) = struct.unpack_from(ACK_FMT, buf)
    return Ack(status=status)


def recv_record(sock: socket.socket, size: int) -> bytes:
    """Read exactly size bytes from a blocking stream.

    Raises Truncated when the peer closes before the record is complete.
    """
    chunks: list[bytes] = []
    got = 0
    while got < size:
        chunk = sock.recv(size - got)
        if not chunk:
            raise Truncated(f"stream closed after {got} of {size} bytes")
        chunks.append(chunk)
        got += len(chunk)
    return b"".join(chunks)
