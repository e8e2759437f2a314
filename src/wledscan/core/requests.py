"""Per-device request queues.

Every device gets one :class:`DeviceRequestManager`. Requests against a device
run strictly one after another in enqueue order; refreshes and firmware
uploads share that single slot.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID

import httpx
from pydantic import ValidationError

from wledscan.config import DevicesConfig
from wledscan.errors import StoreError
from wledscan.models import DeviceInfo, DeviceRecord, DeviceStateInfo

if TYPE_CHECKING:
    from wledscan.core.client import WLEDClient
    from wledscan.storage import DeviceStore

logger = logging.getLogger(__name__)


class RequestKind(str, Enum):
    REFRESH = "refresh"
    SOFTWARE_UPDATE = "software_update"


@dataclass
class RefreshRequest:
    kind: ClassVar[RequestKind] = RequestKind.REFRESH


@dataclass
class SoftwareUpdateRequest:
    firmware: Path
    on_completion: Callable[[], None] | None = None
    on_failure: Callable[[str], None] | None = None

    kind: ClassVar[RequestKind] = RequestKind.SOFTWARE_UPDATE


DeviceRequest = RefreshRequest | SoftwareUpdateRequest


@dataclass(frozen=True)
class RequestResult:
    kind: RequestKind
    success: bool
    error: str | None = None
    info: DeviceInfo | None = None


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class DeviceRequestManager:
    def __init__(
        self,
        device: DeviceRecord,
        store: DeviceStore,
        client: WLEDClient,
        config: DevicesConfig,
    ) -> None:
        self._device = device
        self._store = store
        self._client = client
        self._config = config
        self._queue: deque[tuple[DeviceRequest, asyncio.Future[RequestResult]]] = (
            deque()
        )
        self._worker: asyncio.Task[None] | None = None

    @property
    def device(self) -> DeviceRecord:
        return self._device

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return len(self._queue)

    def enqueue(self, request: DeviceRequest) -> asyncio.Future[RequestResult]:
        """Queue ``request``; the returned future resolves once it has run."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[RequestResult] = loop.create_future()
        self._queue.append((request, future))
        logger.debug(
            "Queued %s for %s (%d waiting)",
            request.kind.value,
            self._device.address,
            len(self._queue),
        )
        if not self.busy:
            self._worker = loop.create_task(
                self._drain(), name=f"wled-requests-{self._device.address}"
            )
        return future

    async def _drain(self) -> None:
        while self._queue:
            request, future = self._queue.popleft()
            try:
                result = await self._execute(request)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:
                logger.exception(
                    "%s request for %s failed", request.kind.value, self._device.address
                )
                if not future.done():
                    future.set_exception(exc)
                continue
            if not future.done():
                future.set_result(result)

    async def _execute(self, request: DeviceRequest) -> RequestResult:
        if isinstance(request, SoftwareUpdateRequest):
            return await self._software_update(request)
        return await self._refresh()

    async def _refresh(self) -> RequestResult:
        device = self._device
        self._store.update(device, is_refreshing=True)
        try:
            payload = await asyncio.wait_for(
                self._client.get_state_info(device.address),
                timeout=self._config.refresh_timeout,
            )
        except (asyncio.TimeoutError, TimeoutError):
            result = self._mark_offline("timeout")
        except (httpx.HTTPError, httpx.InvalidURL, ValidationError) as exc:
            result = self._mark_offline(_describe(exc))
        except Exception as exc:
            logger.exception("Unexpected error refreshing %s", device.address)
            result = self._mark_offline(_describe(exc))
        else:
            self._apply_state(payload)
            result = RequestResult(RequestKind.REFRESH, True, info=payload.info)
        finally:
            if device.is_refreshing:
                self._store.update(device, is_refreshing=False)

        await self._save()
        return result

    def _mark_offline(self, error: str) -> RequestResult:
        device = self._device
        if device.is_online:
            logger.info("Device %s went offline (%s)", device.address, error)
        else:
            logger.debug("Device %s still offline (%s)", device.address, error)
        self._store.update(device, is_online=False, is_refreshing=False)
        return RequestResult(RequestKind.REFRESH, False, error=error)

    def _apply_state(self, payload: DeviceStateInfo) -> None:
        device = self._device
        fields: dict[str, object] = {
            "is_online": True,
            "is_refreshing": False,
            "info": payload.info,
        }
        state = payload.state
        if state is not None:
            fields["brightness"] = state.bri
            fields["is_powered_on"] = state.on
            color = state.primary_color()
            if color is not None:
                fields["color"] = color
            if state.on != device.is_powered_on:
                logger.debug(
                    "Device %s power state changed: %s -> %s",
                    device.address,
                    device.is_powered_on,
                    state.on,
                )
        if not device.is_online:
            logger.info("Device %s came online", device.address)
        self._store.update(device, **fields)

    async def _software_update(self, request: SoftwareUpdateRequest) -> RequestResult:
        address = self._device.address
        try:
            await self._client.push_firmware(address, request.firmware)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            error = _describe(exc)
            logger.warning("Firmware update of %s failed: %s", address, error)
            if request.on_failure is not None:
                request.on_failure(error)
            return RequestResult(RequestKind.SOFTWARE_UPDATE, False, error=error)

        logger.info("Firmware update of %s accepted", address)
        if request.on_completion is not None:
            request.on_completion()
        return RequestResult(RequestKind.SOFTWARE_UPDATE, True)

    async def _save(self) -> None:
        try:
            await asyncio.to_thread(self._store.save)
        except StoreError as exc:
            logger.error("Could not save state of %s: %s", self._device.address, exc)

    async def close(self) -> None:
        while self._queue:
            _request, future = self._queue.popleft()
            future.cancel()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)


class RequestManagerRegistry:
    """Hands out one request manager per device tag."""

    def __init__(
        self, store: DeviceStore, client: WLEDClient, config: DevicesConfig
    ) -> None:
        self._store = store
        self._client = client
        self._config = config
        self._managers: dict[UUID, DeviceRequestManager] = {}
        self._pending: set[asyncio.Future[RequestResult]] = set()

    def manager_for(self, device: DeviceRecord) -> DeviceRequestManager:
        manager = self._managers.get(device.tag)
        if manager is None:
            manager = DeviceRequestManager(
                device, self._store, self._client, self._config
            )
            self._managers[device.tag] = manager
        return manager

    def enqueue(
        self, device: DeviceRecord, request: DeviceRequest
    ) -> asyncio.Future[RequestResult]:
        future = self.manager_for(device).enqueue(request)
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    def enqueue_refresh(self, device: DeviceRecord) -> asyncio.Future[RequestResult]:
        return self.enqueue(device, RefreshRequest())

    def refresh_all(
        self, devices: Iterable[DeviceRecord]
    ) -> list[asyncio.Future[RequestResult]]:
        futures = []
        for device in devices:
            if device.is_refreshing:
                logger.debug("Skipping %s, refresh already running", device.address)
                continue
            futures.append(self.enqueue_refresh(device))
        return futures

    async def drain(self) -> None:
        """Wait until every queued request has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def forget(self, device: DeviceRecord) -> None:
        self._managers.pop(device.tag, None)

    async def close(self) -> None:
        for manager in list(self._managers.values()):
            await manager.close()
        self._managers.clear()
