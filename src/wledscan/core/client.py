from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType

import httpx

from wledscan.config import DevicesConfig, ScanningConfig
from wledscan.core.probe import device_url
from wledscan.models import DeviceStateInfo

logger = logging.getLogger(__name__)

UPDATE_PATH = "/update"


class WLEDClient:
    """Minimal WLED JSON API client: state refresh and firmware upload."""

    def __init__(
        self,
        scanning: ScanningConfig,
        devices: DevicesConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._scanning = scanning
        self._devices = devices
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(timeout=scanning.request_timeout)

    async def get_state_info(self, address: str) -> DeviceStateInfo:
        url = device_url(address, self._scanning.port)
        response = await self._http.get(url, timeout=self._devices.refresh_timeout)
        response.raise_for_status()
        return DeviceStateInfo.model_validate_json(response.content)

    async def push_firmware(self, address: str, firmware: Path) -> None:
        data = await asyncio.to_thread(firmware.read_bytes)
        url = device_url(address, self._scanning.port, UPDATE_PATH)
        logger.info(
            "Uploading %s (%d bytes) to %s", firmware.name, len(data), address
        )
        response = await self._http.post(
            url,
            files={"update": (firmware.name, data, "application/octet-stream")},
            timeout=self._devices.update_timeout,
        )
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> WLEDClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
