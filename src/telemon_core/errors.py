"""Telemon error taxonomy.

Construction-time errors and AcceptFailed/WaitTimeout are fatal to the
server. Per-connection errors only drop the connection they occurred on.
"""
from __future__ import annotations

ERRORS = {
    "E_BAD_ADDRESS": "Server address is invalid",
    "E_ADDRESS_IN_USE": "Server address already in use",
    "E_SOCKET_SETUP": "Socket setup failed",
    "E_ACCEPT": "Accept failed",
    "E_READ": "Read failed",
    "E_WRITE": "Write failed",
    "E_SHORT_RECORD": "Record shorter than its fixed size",
    "E_TRUNCATED": "Stream ended mid-record",
    "E_UNEXPECTED_READINESS": "Unexpected readiness event",
    "E_WAIT_TIMEOUT": "No readiness events within the wait timeout",
    "E_VALIDATION": "Invalid device id",
    "E_REGISTRY_FULL": "Registry at capacity",
    "E_CAPTURE": "Capture file invalid",
}


class TelemonError(Exception):
    code = "E_TELEMON"
    fatal = False

    def __init__(self, detail: str = ""):
        self.detail = detail
        message = ERRORS.get(self.code, "Telemon error")
        super().__init__(f"{message}: {detail}" if detail else message)


class BadAddress(TelemonError):
    code = "E_BAD_ADDRESS"
    fatal = True


class AddressInUse(TelemonError):
    code = "E_ADDRESS_IN_USE"
    fatal = True


class SocketSetupFailed(TelemonError):
    code = "E_SOCKET_SETUP"
    fatal = True


class AcceptFailed(TelemonError):
    code = "E_ACCEPT"
    fatal = True


class ReadFailed(TelemonError):
    code = "E_READ"


class WriteFailed(TelemonError):
    code = "E_WRITE"


class ShortRecord(TelemonError):
    code = "E_SHORT_RECORD"


class Truncated(TelemonError):
    code = "E_TRUNCATED"


class UnexpectedReadiness(TelemonError):
    code = "E_UNEXPECTED_READINESS"


class WaitTimeout(TelemonError):
    code = "E_WAIT_TIMEOUT"
    fatal = True


class ValidationError(TelemonError):
    code = "E_VALIDATION"
    fatal = True


class RegistryFull(TelemonError):
    code = "E_REGISTRY_FULL"


class CaptureError(TelemonError):
    code = "E_CAPTURE"
    fatal = True
