"""Telemon Server - poll-driven monitoring server."""
from .registry import Entry, Registry
from .server import MonitoringServer, ServerConfig

__all__ = ["Entry", "MonitoringServer", "Registry", "ServerConfig"]
