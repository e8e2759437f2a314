"""Active subnet scanning.

:class:`SubnetScanner` probes an enumerated address list in fixed-size
batches. Within a batch every address is probed concurrently; batches run one
after another with a short pause in between. Progress snapshots are
published after every probe.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

from wledscan.config import ScanningConfig
from wledscan.core.addresses import resolve_scan_targets
from wledscan.core.probe import probe_address
from wledscan.errors import InvalidNetworkSpec, ScanInProgressError
from wledscan.models import (
    DiscoveryResult,
    ProbeFailure,
    ProbeOutcome,
    ScanProgress,
    ScanState,
)

if TYPE_CHECKING:
    from wledscan.core.reconciler import DeviceReconciler

logger = logging.getLogger(__name__)

ProbeFunc = Callable[
    [str, ScanningConfig, httpx.AsyncClient | None], Awaitable[ProbeOutcome]
]
ProgressCallback = Callable[[ScanProgress], None]


@dataclass
class ScanSession:
    network: str
    addresses: list[str]
    checked: int = 0
    found: list[DiscoveryResult] = field(default_factory=list)
    cancelled: bool = False


class SubnetScanner:
    def __init__(
        self,
        config: ScanningConfig,
        reconciler: DeviceReconciler | None = None,
        probe: ProbeFunc = probe_address,
    ) -> None:
        self._config = config
        self._reconciler = reconciler
        self._probe = probe
        self._state = ScanState.IDLE
        self._session: ScanSession | None = None
        self._task: asyncio.Task[ScanProgress] | None = None
        self._error: str | None = None
        self._subscribers: list[ProgressCallback] = []

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_scanning(self) -> bool:
        return self._state is ScanState.SCANNING

    @property
    def progress(self) -> ScanProgress:
        session = self._session
        if session is None:
            return ScanProgress(state=self._state, error=self._error)
        return ScanProgress(
            state=self._state,
            network=session.network,
            total=len(session.addresses),
            checked=session.checked,
            found=tuple(session.found),
            error=self._error,
        )

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register ``callback`` for progress snapshots; returns an unsubscriber."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _publish(self) -> None:
        snapshot = self.progress
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Scan progress observer failed")

    def start_scan(self, spec: str) -> asyncio.Task[ScanProgress]:
        """Validate ``spec`` and start scanning it in the background.

        Raises ``ScanInProgressError`` while another scan is running and
        ``InvalidNetworkSpec`` when ``spec`` is unusable; in the latter case no
        address is probed and the scanner stays idle.
        """
        if self._state is ScanState.SCANNING:
            raise ScanInProgressError("A scan is already running; stop it first")
        loop = asyncio.get_running_loop()

        try:
            addresses = resolve_scan_targets(spec, self._config.max_addresses)
        except InvalidNetworkSpec as exc:
            self._session = None
            self._state = ScanState.IDLE
            self._error = str(exc)
            self._publish()
            raise

        session = ScanSession(network=spec.strip(), addresses=addresses)
        self._session = session
        self._error = None
        self._state = ScanState.SCANNING
        self._publish()
        self._task = loop.create_task(self._run(session), name=f"scan-{session.network}")
        return self._task

    async def scan(self, spec: str) -> ScanProgress:
        return await self.start_scan(spec)

    def stop_scan(self) -> None:
        """Stop dispatching probes; probes already running are allowed to finish.

        The flag is checked before every batch and before every probe dispatch.
        """
        session = self._session
        if session is None or self._state is not ScanState.SCANNING:
            return
        logger.info("Cancelling scan of %s", session.network)
        session.cancelled = True

    async def wait(self) -> ScanProgress:
        if self._task is None:
            return self.progress
        return await self._task

    async def _run(self, session: ScanSession) -> ScanProgress:
        batch_size = self._config.batch_size
        logger.info(
            "Scanning %s (%d addresses, batches of %d)",
            session.network,
            len(session.addresses),
            batch_size,
        )
        limits = httpx.Limits(max_connections=batch_size)
        try:
            async with httpx.AsyncClient(
                timeout=self._config.request_timeout, limits=limits
            ) as client:
                for start in range(0, len(session.addresses), batch_size):
                    if start and not session.cancelled:
                        await asyncio.sleep(self._config.batch_delay)
                    if session.cancelled:
                        break
                    batch = session.addresses[start : start + batch_size]
                    await self._run_batch(session, batch, client)
        except asyncio.CancelledError:
            session.cancelled = True
            self._state = ScanState.CANCELLED
            self._publish()
            raise
        except Exception as exc:
            logger.exception("Scan of %s aborted", session.network)
            session.cancelled = True
            self._error = str(exc) or exc.__class__.__name__

        self._state = ScanState.CANCELLED if session.cancelled else ScanState.COMPLETED
        self._publish()
        logger.info(
            "Scan of %s %s: checked %d/%d addresses, found %d WLED devices",
            session.network,
            self._state.value,
            session.checked,
            len(session.addresses),
            len(session.found),
        )
        return self.progress

    async def _run_batch(
        self, session: ScanSession, batch: list[str], client: httpx.AsyncClient
    ) -> None:
        tasks: list[asyncio.Task[ProbeOutcome]] = []
        try:
            for address in batch:
                if session.cancelled:
                    break
                tasks.append(asyncio.create_task(self._safe_probe(address, client)))
                # a stop_scan issued by a running probe is seen before the next dispatch
                await asyncio.sleep(0)

            for next_done in asyncio.as_completed(tasks):
                await self._record(session, await next_done)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _safe_probe(
        self, address: str, client: httpx.AsyncClient
    ) -> ProbeOutcome:
        try:
            return await self._probe(address, self._config, client)
        except Exception as exc:
            logger.exception("Probe of %s failed", address)
            return ProbeOutcome(
                address=address,
                reachable=False,
                is_wled=False,
                error=str(exc) or exc.__class__.__name__,
                failure=ProbeFailure.NETWORK,
            )

    async def _record(self, session: ScanSession, outcome: ProbeOutcome) -> None:
        session.checked += 1
        if not outcome.is_wled:
            self._publish()
            return

        result = DiscoveryResult.from_outcome(outcome)
        session.found.append(result)
        self._publish()
        if self._reconciler is not None:
            try:
                await self._reconciler.reconcile(
                    result.address, result.name, result.info
                )
            except Exception:
                logger.exception("Could not record device at %s", result.address)
