from __future__ import annotations


class InvalidNetworkSpec(ValueError):
    """Network specification that cannot be scanned."""


class ScanInProgressError(RuntimeError):
    """A scan is already running on this scanner."""


class StoreError(RuntimeError):
    """Device store could not be written."""
