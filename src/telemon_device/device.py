"""Telemon Device Simulator - one device streaming frames to the server."""
from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Optional

from telemon_core.errors import SocketSetupFailed, TelemonError, ValidationError, WriteFailed
from telemon_core.protocol import (
    ACK_LEN,
    DEVICE_CADENCE_S,
    DEVICE_NAME_PREFIX,
    MAX_DEVICES,
    SERVER_HOST,
    SERVER_PORT,
)
from telemon_core.records import Ack, TelemetryFrame, decode_ack, encode_frame, recv_record

logger = logging.getLogger(__name__)


def validate_device_id(text: str, device_cap: int = MAX_DEVICES) -> int:
    """Parse a decimal device id in [1, device_cap]."""
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"{text!r} is not a decimal number")
    device_id = int(text)
    if device_id < 1 or device_id > device_cap:
        raise ValidationError(f"{device_id}, it must be between 1 and {device_cap}")
    return device_id


def device_name(device_id: int) -> str:
    return f"{DEVICE_NAME_PREFIX}{device_id}"


@dataclass
class DeviceConfig:
    host: str = SERVER_HOST
    port: int = SERVER_PORT
    cadence: float = DEVICE_CADENCE_S


class Device:
    def __init__(self, device_id: int, config: Optional[DeviceConfig] = None, rng: Optional[random.Random] = None):
        self.device_id = device_id
        self.name = device_name(device_id)
        self.config = config or DeviceConfig()
        self.rng = rng or random.Random()
        self.sock: Optional[socket.socket] = None
        self.sent = 0
        self.acked = 0

    @property
    def is_alive(self) -> bool:
        return self.sock is not None

    def connect(self) -> bool:
        """Open the stream. Connect errors are logged; the next cycle retries."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketSetupFailed(f"socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        except OSError as e:
            logger.warning("setsockopt SO_KEEPALIVE: %s", e)

        try:
            sock.connect((self.config.host, self.config.port))
        except OSError as e:
            sock.close()
            logger.error("connect %s:%d: %s", self.config.host, self.config.port, e)
            return False

        self.sock = sock
        logger.info("%s connected to %s:%d", self.name, self.config.host, self.config.port)
        return True

    def generate_data(self) -> int:
        return self.rng.randrange(100)

    def send_message(self) -> Optional[Ack]:
        """One round trip: write a frame, read an ack.

        Raises WriteFailed when the frame cannot be written. Read errors are
        logged and return None.
        """
        if not self.is_alive:
            logger.error("Monitor Server is not alive, trying to connect again")
            self.connect()
            return None

        frame = TelemetryFrame(device_id=self.device_id, device_name=self.name, data=self.generate_data())
        logger.info("sending data to server: %d", frame.data)
        try:
            self.sock.sendall(encode_frame(frame))
        except OSError as e:
            raise WriteFailed(str(e)) from e
        self.sent += 1

        try:
            ack = decode_ack(recv_record(self.sock, ACK_LEN))
        except (TelemonError, OSError) as e:
            logger.error("read: %s", e)
            return None

        self.acked += 1
        logger.info("response code: %d", ack.status)
        return ack

    def run(self, count: Optional[int] = None) -> None:
        """Send a frame every cadence seconds; stop after count cycles when given."""
        cycles = 0
        while count is None or cycles < count:
            self.send_message()
            cycles += 1
            if count is None or cycles < count:
                time.sleep(self.config.cadence)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None
