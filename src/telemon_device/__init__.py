"""Telemon Device - simulated telemetry source."""
from .device import Device, DeviceConfig, validate_device_id

__all__ = ["Device", "DeviceConfig", "validate_device_id"]
