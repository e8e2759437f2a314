from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

from .wled import DeviceInfo

UNKNOWN_DEVICE_NAME = "Unknown WLED Device"


class ProbeFailure(str, Enum):
    UNREACHABLE = "unreachable"
    NETWORK = "network"
    PROTOCOL = "protocol"
    SCHEMA = "schema"


class ProbeOutcome(BaseModel):
    """Result of probing one candidate address."""

    model_config = {"frozen": True, "extra": "forbid"}

    address: str
    reachable: bool
    is_wled: bool
    name: str | None = None
    version: str | None = None
    brand: str | None = None
    info: DeviceInfo | None = None
    elapsed: float = 0.0
    error: str | None = None
    failure: ProbeFailure | None = None


class DiscoveryResult(BaseModel):
    """A confirmed WLED device found by a scan."""

    model_config = {"frozen": True, "extra": "forbid"}

    address: str
    name: str
    version: str | None = None
    brand: str | None = None
    info: DeviceInfo | None = None

    @classmethod
    def from_outcome(cls, outcome: ProbeOutcome) -> DiscoveryResult:
        return cls(
            address=outcome.address,
            name=outcome.name or UNKNOWN_DEVICE_NAME,
            version=outcome.version,
            brand=outcome.brand,
            info=outcome.info,
        )


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScanProgress(BaseModel):
    """Snapshot of a scan session, published to observers by value."""

    model_config = {"frozen": True, "extra": "forbid"}

    state: ScanState = ScanState.IDLE
    network: str = ""
    total: int = 0
    checked: int = 0
    found: tuple[DiscoveryResult, ...] = ()
    error: str | None = None

    @property
    def fraction(self) -> float:
        if self.state is ScanState.COMPLETED:
            return 1.0
        if self.total == 0:
            return 0.0
        return self.checked / self.total
