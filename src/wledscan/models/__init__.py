"""Data models for wledscan."""

from wledscan.models.device import DeviceCatalog, DeviceRecord
from wledscan.models.scan import (
    UNKNOWN_DEVICE_NAME,
    DiscoveryResult,
    ProbeFailure,
    ProbeOutcome,
    ScanProgress,
    ScanState,
)
from wledscan.models.wled import DeviceInfo, DeviceState, DeviceStateInfo

__all__ = [
    "UNKNOWN_DEVICE_NAME",
    "DeviceCatalog",
    "DeviceInfo",
    "DeviceRecord",
    "DeviceState",
    "DeviceStateInfo",
    "DiscoveryResult",
    "ProbeFailure",
    "ProbeOutcome",
    "ScanProgress",
    "ScanState",
]
