"""Telemon Core - Shared wire records and errors."""
from .records import Ack, TelemetryFrame, decode_ack, decode_frame, encode_ack, encode_frame, recv_record

__all__ = [
    "Ack",
    "TelemetryFrame",
    "decode_ack",
    "decode_frame",
    "encode_ack",
    "encode_frame",
    "recv_record",
]
