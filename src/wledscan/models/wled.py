"""JSON API payloads served by WLED controllers."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field


class DeviceInfo(BaseModel):
    """The ``info`` object of ``/json/si``; only the identity fields are kept."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    version: str | None = Field(
        default=None, validation_alias=AliasChoices("ver", "version")
    )
    brand: str | None = None
    product: str | None = None
    mac: str | None = None
    arch: str | None = None


class SegmentState(BaseModel):
    model_config = {"extra": "ignore"}

    # WLED reports colours as [r, g, b(, w)] lists, newer builds may send hex strings
    col: list[list[int] | str] = Field(default_factory=list)


class DeviceState(BaseModel):
    model_config = {"extra": "ignore"}

    on: bool = False
    bri: int = Field(default=0, ge=0, le=255)
    seg: list[SegmentState] = Field(default_factory=list)

    def primary_color(self) -> int | None:
        """Primary colour of the first segment as ``0xRRGGBB``."""
        if not self.seg or not self.seg[0].col:
            return None
        color = self.seg[0].col[0]
        if isinstance(color, str):
            try:
                return int(color[:6], 16)
            except ValueError:
                return None
        if len(color) < 3:
            return None
        red, green, blue = (max(0, min(255, channel)) for channel in color[:3])
        return (red << 16) | (green << 8) | blue


class DeviceStateInfo(BaseModel):
    """Response of ``GET /json/si``. A body without ``info`` is not a WLED device."""

    model_config = {"extra": "ignore"}

    info: DeviceInfo
    state: DeviceState | None = None
