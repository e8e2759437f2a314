from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from wledscan.core.addresses import normalize_address
from wledscan.errors import StoreError
from wledscan.models import DeviceInfo, DeviceRecord

if TYPE_CHECKING:
    from wledscan.core.requests import RequestManagerRegistry, RequestResult
    from wledscan.storage import DeviceStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    device: DeviceRecord
    created: bool
    needs_refresh: bool = False
    refresh: asyncio.Future[RequestResult] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class DeviceReconciler:
    """Merge verified sightings into the device store.

    Both discovery paths call :meth:`reconcile`. A single lock around
    lookup, create/update and save keeps one record per address.
    """

    def __init__(
        self, store: DeviceStore, requests: RequestManagerRegistry | None = None
    ) -> None:
        self._store = store
        self._requests = requests
        self._lock = asyncio.Lock()

    async def reconcile(
        self, address: str, name: str, info: DeviceInfo | None = None
    ) -> ReconcileResult:
        address = normalize_address(address)
        async with self._lock:
            device = self._store.find(address)
            if device is None:
                result = self._create(address, name, info)
            else:
                result = self._update(device, name, info)

            try:
                await asyncio.to_thread(self._store.save)
            except StoreError as exc:
                logger.error("Could not save device %s: %s", address, exc)
                result.error = str(exc)

            if result.needs_refresh and self._requests is not None:
                result.refresh = self._requests.enqueue_refresh(result.device)
        return result

    def _create(
        self, address: str, name: str, info: DeviceInfo | None
    ) -> ReconcileResult:
        logger.info("Adding new device '%s' at %s", name, address)
        device = self._store.create(
            tag=uuid4(),
            address=address,
            name=name,
            is_custom_name=False,
            is_hidden=False,
            is_online=True,
            info=info,
        )
        return ReconcileResult(device=device, created=True, needs_refresh=True)

    def _update(
        self, device: DeviceRecord, name: str, info: DeviceInfo | None
    ) -> ReconcileResult:
        logger.debug("Device %s already known", device.address)
        result = ReconcileResult(device=device, created=False)
        fields: dict[str, object] = {}
        if name and (not device.name or not device.is_custom_name):
            fields["name"] = name
            fields["is_custom_name"] = False
        if info is not None and device.info is None:
            fields["info"] = info
        if not device.is_online:
            logger.info("Marking previously offline device %s as online", device.address)
            fields["is_online"] = True
            result.needs_refresh = not device.is_refreshing

        if fields:
            self._store.update(device, **fields)
        return result
