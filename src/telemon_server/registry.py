"""Bounded registry of watched sockets backed by poll(2)."""
from __future__ import annotations

import select
import socket
from typing import Iterator, List, Optional, Tuple

from telemon_core.errors import RegistryFull

WATCH_EVENTS = select.POLLIN


class Entry:
    """One watched socket. The fd is kept so the slot can be unregistered after close."""

    __slots__ = ("sock", "fd", "peer", "is_listener", "device_id")

    def __init__(self, sock: socket.socket, peer: Optional[tuple] = None, is_listener: bool = False):
        self.sock = sock
        self.fd = sock.fileno()
        self.peer = peer
        self.is_listener = is_listener
        self.device_id: Optional[int] = None

    def label(self) -> str:
        if self.is_listener:
            return f"listener fd {self.fd}"
        if self.device_id is not None:
            return f"device {self.device_id} fd {self.fd}"
        if self.peer:
            return f"{self.peer[0]}:{self.peer[1]} fd {self.fd}"
        return f"fd {self.fd}"

    def __repr__(self) -> str:
        return f"Entry({self.label()})"


class Registry:
    """Ordered set of at most device_cap + 1 entries; slot 0 is the listener.

    Removal compacts the list, so later entries shift down one position and
    dispatch order always follows registration order.
    """

    def __init__(self, device_cap: int):
        if device_cap < 1:
            raise ValueError("device_cap must be at least 1")
        self.device_cap = device_cap
        self._entries: List[Entry] = []
        self._poller = select.poll()

    @property
    def capacity(self) -> int:
        return self.device_cap + 1

    @property
    def listener(self) -> Optional[Entry]:
        if self._entries and self._entries[0].is_listener:
            return self._entries[0]
        return None

    @property
    def device_count(self) -> int:
        return len(self._entries) - (1 if self.listener else 0)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries))

    def set_listener(self, sock: socket.socket) -> Entry:
        if self.listener is not None:
            raise ValueError("listener already registered")
        entry = Entry(sock, is_listener=True)
        self._entries.insert(0, entry)
        self._poller.register(entry.fd, WATCH_EVENTS)
        return entry

    def add(self, sock: socket.socket, peer: Optional[tuple] = None) -> Entry:
        if self.device_count >= self.device_cap:
            raise RegistryFull(f"{self.device_count} of {self.device_cap} device slots in use")
        entry = Entry(sock, peer=peer)
        self._entries.append(entry)
        self._poller.register(entry.fd, WATCH_EVENTS)
        return entry

    def remove(self, entry: Entry) -> None:
        if entry.is_listener:
            raise ValueError("the listener cannot be removed")
        self._entries.remove(entry)
        self._poller.unregister(entry.fd)

    def clear(self) -> List[Entry]:
        """Unregister everything, listener included, and return the entries."""
        entries, self._entries = self._entries, []
        for entry in entries:
            self._poller.unregister(entry.fd)
        return entries

    def wait(self, timeout_ms: Optional[int]) -> List[Tuple[Entry, int]]:
        """Block until an entry is ready; return (entry, events) in registry order."""
        ready = dict(self._poller.poll(timeout_ms))
        return [(entry, ready[entry.fd]) for entry in self._entries if entry.fd in ready]
