"""Passive discovery of WLED controllers through mDNS advertisements.

WLED announces itself as a plain ``_http._tcp`` service, so every advertised
service is connected to and asked for ``/json/si`` before it is accepted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import TYPE_CHECKING

import httpx
from zeroconf import Error as ZeroconfError
from zeroconf import ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from wledscan.config import DiscoveryConfig, ScanningConfig
from wledscan.core import probe
from wledscan.core.probe import IdentityCheck, verify_device
from wledscan.models import UNKNOWN_DEVICE_NAME, DiscoveryResult

if TYPE_CHECKING:
    from wledscan.core.reconciler import DeviceReconciler

logger = logging.getLogger(__name__)

VerifyFunc = Callable[
    [str, ScanningConfig, httpx.AsyncClient | None], Awaitable[IdentityCheck]
]


def service_display_name(name: str, service_type: str) -> str:
    suffix = f".{service_type}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name.rstrip(".")


def _ordered_addresses(info: AsyncServiceInfo) -> list[str]:
    addresses = info.parsed_addresses()
    return sorted(addresses, key=lambda address: ":" in address)


class DiscoveryListener:
    """Browse for advertised HTTP services and reconcile the WLED ones.

    The listener runs from :meth:`start` until :meth:`stop`. Each service name
    is handled once per run; failures are logged and never stop the browse
    session.
    """

    def __init__(
        self,
        config: DiscoveryConfig,
        scanning: ScanningConfig,
        reconciler: DeviceReconciler | None = None,
        verify: VerifyFunc = verify_device,
    ) -> None:
        self._config = config
        self._scanning = scanning
        self._reconciler = reconciler
        self._verify = verify
        self._loop: asyncio.AbstractEventLoop | None = None
        self._aiozc: AsyncZeroconf | None = None
        self._browser: AsyncServiceBrowser | None = None
        self._client: httpx.AsyncClient | None = None
        self._seen: set[str] = set()
        self._tasks: set[asyncio.Task[DiscoveryResult | None]] = set()
        self._discovered: dict[str, DiscoveryResult] = {}

    @property
    def running(self) -> bool:
        return self._browser is not None

    @property
    def discovered(self) -> list[DiscoveryResult]:
        return list(self._discovered.values())

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._seen.clear()
        self._discovered.clear()
        self._client = httpx.AsyncClient(timeout=self._scanning.request_timeout)
        logger.info("Browsing for %s services", self._config.service_type)
        try:
            self._aiozc = AsyncZeroconf()
            self._browser = AsyncServiceBrowser(
                self._aiozc.zeroconf,
                [self._config.service_type],
                handlers=[self._on_service_state_change],
            )
        except (OSError, ZeroconfError) as exc:
            logger.error("mDNS browser failed: %s", exc)
            await self._teardown()
            raise RuntimeError("Could not start mDNS discovery") from exc

    async def stop(self) -> None:
        if self._loop is None:
            return
        logger.info("Stopping discovery (%d devices verified)", len(self._discovered))
        await self._teardown()

    async def _teardown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._browser is not None:
            await self._browser.async_cancel()
            self._browser = None
        if self._aiozc is not None:
            await self._aiozc.async_close()
            self._aiozc = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._loop = None

    async def run(self, duration: float | None = None) -> list[DiscoveryResult]:
        """Browse for ``duration`` seconds and return the verified devices."""
        async with self:
            await asyncio.sleep(duration or self._config.duration)
            await self.wait_idle()
        return self.discovered

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def __aenter__(self) -> DiscoveryListener:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if self._loop is None:
            return
        if state_change is ServiceStateChange.Added:
            self._loop.call_soon_threadsafe(self._spawn, service_type, name)
        elif state_change is ServiceStateChange.Removed:
            logger.debug("Service %s removed", name)

    def _spawn(self, service_type: str, name: str) -> None:
        if name in self._seen or self._loop is None:
            return
        self._seen.add(name)
        logger.debug("Found service %s", name)
        task = self._loop.create_task(self.handle_service(service_type, name))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[DiscoveryResult | None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Handling discovered service failed: %s", exc, exc_info=exc)

    async def handle_service(
        self, service_type: str, name: str
    ) -> DiscoveryResult | None:
        """Connect to one advertised service, verify it and reconcile it."""
        display_name = service_display_name(name, service_type) or UNKNOWN_DEVICE_NAME
        try:
            addresses, port = await self._resolve(service_type, name)
        except ZeroconfError as exc:
            logger.debug("Could not resolve %s: %s", name, exc)
            return None
        if not addresses:
            logger.debug("No addresses for service %s", name)
            return None

        address = await self._connect(addresses, port)
        if address is None:
            logger.info("Could not connect to %s", display_name)
            return None
        logger.debug("Connected to %s at %s:%d", display_name, address, port)

        check = await self._verify(address, self._scanning, self._client)
        if check.info is None:
            logger.info(
                "%s at %s is not a WLED device (%s)", display_name, address, check.error
            )
            return None

        info = check.info.info
        result = DiscoveryResult(
            address=address,
            name=display_name,
            version=info.version,
            brand=info.brand,
            info=info,
        )
        self._discovered[name] = result
        logger.info("Verified %s at %s is a WLED device", display_name, address)
        if self._reconciler is not None:
            await self._reconciler.reconcile(address, display_name, info)
        return result

    async def _resolve(self, service_type: str, name: str) -> tuple[list[str], int]:
        if self._aiozc is None:
            return [], 0
        info = AsyncServiceInfo(service_type, name)
        timeout_ms = self._config.resolve_timeout * 1000
        if not await info.async_request(self._aiozc.zeroconf, timeout_ms):
            return [], 0
        return _ordered_addresses(info), info.port or self._scanning.port

    async def _connect(self, addresses: list[str], port: int) -> str | None:
        for address in addresses:
            try:
                return await probe.connect_peer(
                    address, port, self._scanning.connect_timeout
                )
            except (asyncio.TimeoutError, TimeoutError, OSError) as exc:
                logger.debug("Connecting to %s:%d failed: %s", address, port, exc)
        return None
