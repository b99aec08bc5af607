"""Telemon wire protocol constants.

Single source of truth for record layouts and deployment defaults.
Keep this file stable. Server and devices must remain synchronized.
"""
import struct

# Deployment defaults
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 8100
LISTEN_BACKLOG = 32
MAX_DEVICES = 5
WAIT_TIMEOUT_MS = 3 * 60 * 1000
DEVICE_CADENCE_S = 1.0

DEVICE_NAME_LEN = 64
DEVICE_NAME_PREFIX = "device_"

# Status codes carried by the acknowledgement
STATUS_OK = 200

# Telemetry frame: [DeviceId(4) | DeviceName(64) | Data(4)] = 72 bytes
# Native byte order, standard sizes, no padding.
FRAME_FMT = f"=i{DEVICE_NAME_LEN}si"
FRAME_LEN = struct.calcsize(FRAME_FMT)

# Acknowledgement: [Status(4)] = 4 bytes
ACK_FMT = "=i"
ACK_LEN = struct.calcsize(ACK_FMT)

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# Capture file: file magic, then [Magic(4) | Ver(1) | Seq(4) | RecvTs(8)] + raw frame
MAGIC_CAPTURE_FILE = b"TMCF"
MAGIC_CAPTURE_REC = b"TMCR"
CAPTURE_VERSION = 1
CAPTURE_HEADER_FMT = "<4sBId"
CAPTURE_HEADER_LEN = struct.calcsize(CAPTURE_HEADER_FMT)
CAPTURE_FILE_HEADER_LEN = 4
CAPTURE_REC_LEN = CAPTURE_HEADER_LEN + FRAME_LEN
