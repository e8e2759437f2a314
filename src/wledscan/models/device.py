from __future__ import annotations

from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from .wled import DeviceInfo


class DeviceRecord(BaseModel):
    """A known WLED controller. ``address`` is the matching key."""

    model_config = {"extra": "forbid", "validate_assignment": True}

    tag: UUID = Field(default_factory=uuid4)
    address: str
    name: str = ""
    is_custom_name: bool = False
    is_hidden: bool = False
    is_online: bool = False
    # runtime only, owned by the request manager
    is_refreshing: bool = Field(default=False, exclude=True)
    brightness: int = Field(default=0, ge=0, le=255)
    is_powered_on: bool = False
    color: int = 0
    info: DeviceInfo | None = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.info is not None and self.info.name:
            return self.info.name
        return self.address


class DeviceCatalog(BaseModel):
    model_config = {"extra": "forbid"}

    devices: list[DeviceRecord] = Field(default_factory=list)
