"""Shared fixtures: an in-process server on an ephemeral port."""
from __future__ import annotations

import socket
import threading

import pytest

from telemon_core.errors import WaitTimeout
from telemon_server.server import MonitoringServer, ServerConfig


def make_server(capture=None, max_devices: int = 5) -> MonitoringServer:
    srv = MonitoringServer(
        ServerConfig(host="127.0.0.1", port=0, max_devices=max_devices, wait_timeout_ms=2000),
        capture=capture,
    )
    srv.bind()
    srv.listen()
    return srv


@pytest.fixture
def server():
    srv = make_server()
    yield srv
    srv.close()


@pytest.fixture
def connect(server):
    clients: list[socket.socket] = []

    def _connect() -> socket.socket:
        s = socket.create_connection(server.address, timeout=2.0)
        clients.append(s)
        return s

    yield _connect
    for s in clients:
        s.close()


@pytest.fixture
def pump(server):
    """Run poll passes until cond() holds."""

    def _pump(cond, rounds: int = 50) -> None:
        for _ in range(rounds):
            if cond():
                return
            try:
                server.poll_once(100)
            except WaitTimeout:
                pass
        assert cond(), "condition not reached"

    return _pump


class ServerThread:
    def __init__(self, srv: MonitoringServer):
        self.server = srv
        self.stop = threading.Event()
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def _loop(self) -> None:
        while not self.stop.is_set():
            try:
                self.server.poll_once(50)
            except WaitTimeout:
                continue

    def start(self) -> "ServerThread":
        self.thread.start()
        return self

    def shutdown(self) -> None:
        self.stop.set()
        self.thread.join(timeout=5)
        self.server.close()


@pytest.fixture
def server_thread():
    st = ServerThread(make_server()).start()
    yield st
    st.shutdown()
