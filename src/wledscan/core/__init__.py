from __future__ import annotations

from .addresses import (
    detect_local_network,
    enumerate_addresses,
    normalize_address,
    resolve_scan_targets,
)
from .probe import check_port, probe_address, verify_device
from .client import WLEDClient
from .requests import (
    DeviceRequestManager,
    RefreshRequest,
    RequestManagerRegistry,
    RequestResult,
    SoftwareUpdateRequest,
)
from .reconciler import DeviceReconciler, ReconcileResult
from .scanner import SubnetScanner
from .discovery import DiscoveryListener

__all__ = [
    "DeviceReconciler",
    "DeviceRequestManager",
    "DiscoveryListener",
    "ReconcileResult",
    "RefreshRequest",
    "RequestManagerRegistry",
    "RequestResult",
    "SoftwareUpdateRequest",
    "SubnetScanner",
    "WLEDClient",
    "check_port",
    "detect_local_network",
    "enumerate_addresses",
    "normalize_address",
    "probe_address",
    "resolve_scan_targets",
    "verify_device",
]
