"""wledscan - find, verify and track WLED controllers on the local network."""

from __future__ import annotations

from importlib.metadata import version

from .config import ScanningConfig, Settings, get_settings
from .models import DeviceRecord, DiscoveryResult, ProbeOutcome, ScanProgress
from .storage import Database, DeviceStore

__all__ = [
    "Database",
    "DeviceRecord",
    "DeviceStore",
    "DiscoveryResult",
    "ProbeOutcome",
    "ScanProgress",
    "ScanningConfig",
    "Settings",
    "__version__",
    "get_settings",
]

__version__ = version("wledscan")
