"""Telemon Monitoring Server - single-threaded poll loop over device streams."""
from __future__ import annotations

import errno
import logging
import select
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from telemon_core.errors import (
    AcceptFailed,
    AddressInUse,
    BadAddress,
    ReadFailed,
    RegistryFull,
    ShortRecord,
    SocketSetupFailed,
    TelemonError,
    UnexpectedReadiness,
    WaitTimeout,
    WriteFailed,
)
from telemon_core.protocol import (
    ACK_LEN,
    FRAME_LEN,
    LISTEN_BACKLOG,
    MAX_DEVICES,
    SERVER_HOST,
    SERVER_PORT,
    STATUS_OK,
    WAIT_TIMEOUT_MS,
)
from telemon_core.records import Ack, TelemetryFrame, decode_frame, encode_ack
from telemon_server.registry import Entry, Registry

if TYPE_CHECKING:
    from telemon_server.capture import CaptureWriter

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    host: str = SERVER_HOST
    port: int = SERVER_PORT
    max_devices: int = MAX_DEVICES
    backlog: int = LISTEN_BACKLOG
    # 0 disables the idle timeout and waits forever.
    wait_timeout_ms: int = WAIT_TIMEOUT_MS


class MonitoringServer:
    """Accepts device streams on one endpoint and acknowledges every frame.

    All sockets are non-blocking; the only suspension point is wait().
    The registry and counter table are touched from the loop thread only.
    """

    def __init__(self, config: Optional[ServerConfig] = None, capture: Optional["CaptureWriter"] = None):
        self.config = config or ServerConfig()
        self.registry = Registry(self.config.max_devices)
        self.counters: Dict[int, int] = {}
        self.total_received = 0
        self.capture = capture
        self._sock: Optional[socket.socket] = None

    @property
    def address(self) -> Tuple[str, int]:
        if self._sock is None:
            raise SocketSetupFailed("server is not bound")
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def device_count(self) -> int:
        return self.registry.device_count

    def bind(self) -> None:
        host, port = self.config.host, self.config.port
        if not 0 <= port <= 65535:
            raise BadAddress(f"port {port} out of range")
        try:
            addr = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_STREAM)[0][4]
        except (socket.gaierror, UnicodeError) as e:
            raise BadAddress(f"{host}: {e}") from e

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketSetupFailed(f"socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            # Not fatal: bind may still succeed without address reuse.
            logger.warning("setsockopt SO_REUSEADDR: %s", e)

        try:
            sock.bind(addr)
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                raise AddressInUse(f"{host}:{port}") from e
            if e.errno == errno.EADDRNOTAVAIL:
                raise BadAddress(f"{host}:{port}: {e}") from e
            raise SocketSetupFailed(f"bind {host}:{port}: {e}") from e

        self._sock = sock
        logger.info("socket bound to %s:%d", *self.address)

    def listen(self, backlog: Optional[int] = None) -> None:
        if self._sock is None:
            raise SocketSetupFailed("listen called before bind")
        backlog = self.config.backlog if backlog is None else backlog
        try:
            self._sock.listen(backlog)
            self._sock.setblocking(False)
            self._sock.set_inheritable(False)
        except OSError as e:
            raise SocketSetupFailed(f"listen: {e}") from e
        self.registry.set_listener(self._sock)
        logger.info("monitoring server listening (backlog %d, %d device slots)", backlog, self.config.max_devices)

    def accept_all(self) -> int:
        """Accept until the kernel queue is drained. Returns the number of connections kept."""
        kept = 0
        while True:
            try:
                conn, peer = self._sock.accept()
            except BlockingIOError:
                break
            except OSError as e:
                raise AcceptFailed(str(e)) from e

            try:
                conn.setblocking(False)
                conn.set_inheritable(False)
            except OSError as e:
                logger.warning("configuring connection from %s:%d: %s", peer[0], peer[1], e)

            try:
                entry = self.registry.add(conn, peer)
            except RegistryFull as e:
                logger.warning("rejecting %s:%d: %s", peer[0], peer[1], e)
                conn.close()
                continue

            kept += 1
            logger.info("new device connection accepted - %s", entry.label())
        return kept

    def wait(self, timeout_ms: Optional[int] = None) -> List[Tuple[Entry, int]]:
        if timeout_ms is None:
            timeout_ms = self.config.wait_timeout_ms
        ready = self.registry.wait(timeout_ms if timeout_ms > 0 else None)
        if not ready:
            raise WaitTimeout(f"{timeout_ms} ms without activity")
        return ready

    def dispatch(self, ready: List[Tuple[Entry, int]]) -> None:
        for entry, events in ready:
            if not events:
                continue

            if events & select.POLLNVAL:
                if entry.is_listener:
                    raise AcceptFailed("listener socket reported invalid")
                # Already invalid, nothing left to close.
                logger.warning("dropping %s: invalid descriptor", entry.label())
                self.registry.remove(entry)
                entry.sock.detach()
                continue

            if events & ~select.POLLIN:
                if entry.is_listener:
                    raise AcceptFailed(f"unexpected listener events {events:#x}")
                self._drop(entry, UnexpectedReadiness(f"events {events:#x}"))
                continue

            if entry.is_listener:
                self.accept_all()
            else:
                self.read_one_frame(entry)

    def read_one_frame(self, entry: Entry) -> Optional[TelemetryFrame]:
        """Consume one frame from entry, count it and acknowledge it.

        Returns the decoded frame, or None when nothing was counted.
        """
        try:
            buf = entry.sock.recv(FRAME_LEN)
        except BlockingIOError:
            return None
        except OSError as e:
            self._drop(entry, ReadFailed(str(e)))
            return None

        if not buf:
            logger.info("%s closed by peer", entry.label())
            self._drop(entry)
            return None

        try:
            frame = decode_frame(buf)
        except ShortRecord as e:
            self._drop(entry, e)
            return None

        entry.device_id = frame.device_id
        count = self.counters.get(frame.device_id, 0) + 1
        self.counters[frame.device_id] = count
        self.total_received += 1
        logger.info("message from device %s, data: %d", frame.device_name, frame.data)
        logger.info("total messages from %s: %d", frame.device_name, count)

        if self.capture is not None:
            try:
                self.capture.append(buf)
            except OSError as e:
                # Capture is optional; serve on without it.
                logger.warning("capture disabled: %s", e)
                self.capture = None

        try:
            sent = entry.sock.send(encode_ack(Ack(STATUS_OK)))
        except OSError as e:
            self._drop(entry, WriteFailed(str(e)))
            return frame
        if sent != ACK_LEN:
            self._drop(entry, WriteFailed(f"sent {sent} of {ACK_LEN} bytes"))
        return frame

    def poll_once(self, timeout_ms: Optional[int] = None) -> None:
        self.dispatch(self.wait(timeout_ms))

    def run(self) -> None:
        """Serve until a fatal error; never returns normally."""
        while True:
            self.poll_once()

    def close(self) -> None:
        for entry in self.registry.clear():
            entry.sock.close()
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _drop(self, entry: Entry, reason: Optional[TelemonError] = None) -> None:
        if reason is not None:
            logger.warning("dropping %s: %s", entry.label(), reason)
        self.registry.remove(entry)
        entry.sock.close()
