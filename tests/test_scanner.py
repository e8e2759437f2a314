"""Tests for the batched subnet scanner."""

from __future__ import annotations

import asyncio

import pytest

from wledscan.config import ScanningConfig
from wledscan.core import SubnetScanner
from wledscan.errors import InvalidNetworkSpec, ScanInProgressError
from wledscan.models import DeviceInfo, ProbeOutcome, ScanProgress, ScanState

FAST = ScanningConfig(batch_delay=0)


def _wled(address: str) -> ProbeOutcome:
    return ProbeOutcome(
        address=address,
        reachable=True,
        is_wled=True,
        name=f"wled-{address.rsplit('.', 1)[-1]}",
        version="0.14.4",
        info=DeviceInfo(name="WLED", version="0.14.4"),
    )


def _miss(address: str) -> ProbeOutcome:
    return ProbeOutcome(address=address, reachable=False, is_wled=False)


class FakeProbe:
    def __init__(self, wled: set[str] | None = None, delay: float = 0) -> None:
        self.wled = wled or set()
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, address, config, client=None) -> ProbeOutcome:
        self.calls.append(address)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return _wled(address) if address in self.wled else _miss(address)


class RecordingReconciler:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def reconcile(self, address, name, info=None):
        self.calls.append((address, name))


def test_scan_finds_devices_and_completes():
    probe = FakeProbe(wled={"192.168.1.7", "192.168.1.200"})
    scanner = SubnetScanner(FAST, probe=probe)

    progress = asyncio.run(scanner.scan("192.168.1.0/24"))

    assert progress.state is ScanState.COMPLETED
    assert progress.total == 254
    assert progress.checked == 254
    assert progress.fraction == 1.0
    assert sorted(result.address for result in progress.found) == [
        "192.168.1.200",
        "192.168.1.7",
    ]
    assert len(probe.calls) == 254


def test_batches_limit_concurrency():
    probe = FakeProbe(delay=0.05)
    scanner = SubnetScanner(ScanningConfig(batch_size=20, batch_delay=0), probe=probe)

    asyncio.run(scanner.scan("10.0.0.1-10.0.0.60"))

    assert len(probe.calls) == 60
    assert probe.max_active == 20


def test_progress_published_after_every_probe():
    snapshots: list[ScanProgress] = []
    scanner = SubnetScanner(FAST, probe=FakeProbe())
    scanner.subscribe(snapshots.append)

    asyncio.run(scanner.scan("10.0.0.1-10.0.0.5"))

    checked = [snapshot.checked for snapshot in snapshots]
    assert checked == [0, 1, 2, 3, 4, 5, 5]
    assert snapshots[0].state is ScanState.SCANNING
    assert snapshots[-1].state is ScanState.COMPLETED


def test_observer_errors_do_not_stop_scan():
    def broken(_snapshot: ScanProgress) -> None:
        raise RuntimeError("observer failed")

    scanner = SubnetScanner(FAST, probe=FakeProbe())
    scanner.subscribe(broken)

    progress = asyncio.run(scanner.scan("10.0.0.1-10.0.0.3"))
    assert progress.checked == 3


def test_unsubscribe():
    snapshots: list[ScanProgress] = []
    scanner = SubnetScanner(FAST, probe=FakeProbe())
    unsubscribe = scanner.subscribe(snapshots.append)
    unsubscribe()

    asyncio.run(scanner.scan("10.0.0.1"))
    assert snapshots == []


def test_stop_during_dispatch_withholds_remaining_probes():
    scanner: SubnetScanner

    class StoppingProbe(FakeProbe):
        async def __call__(self, address, config, client=None):
            if not self.calls:
                scanner.stop_scan()
            return await super().__call__(address, config, client)

    probe = StoppingProbe()
    scanner = SubnetScanner(FAST, probe=probe)

    progress = asyncio.run(scanner.scan("192.168.1.0/24"))

    assert progress.state is ScanState.CANCELLED
    assert progress.checked == 1
    assert probe.calls == ["192.168.1.1"]


def test_stop_between_batches_keeps_completed_batch():
    scanner = SubnetScanner(FAST, probe=FakeProbe())

    def _stop_after_first_batch(snapshot: ScanProgress) -> None:
        if snapshot.checked == 20:
            scanner.stop_scan()

    scanner.subscribe(_stop_after_first_batch)
    progress = asyncio.run(scanner.scan("192.168.1.0/24"))

    assert progress.state is ScanState.CANCELLED
    assert progress.checked == 20
    assert progress.fraction < 1.0


def test_reconciler_errors_do_not_stall_the_scanner():
    class BrokenReconciler:
        def __init__(self) -> None:
            self.calls = 0

        async def reconcile(self, address, name, info=None):
            self.calls += 1
            raise RuntimeError("store bug")

    reconciler = BrokenReconciler()
    scanner = SubnetScanner(
        FAST, reconciler=reconciler, probe=FakeProbe(wled={"10.0.0.1", "10.0.0.3"})
    )

    async def _run():
        first = await scanner.scan("10.0.0.1-10.0.0.3")
        second = await scanner.scan("10.0.0.1")
        return first, second

    first, second = asyncio.run(_run())
    assert first.state is ScanState.COMPLETED
    assert first.checked == 3
    assert len(first.found) == 2
    assert second.state is ScanState.COMPLETED
    assert reconciler.calls == 3
    assert scanner.state is ScanState.COMPLETED


def test_unexpected_failure_ends_the_session(monkeypatch):
    scanner = SubnetScanner(FAST, probe=FakeProbe())

    async def _explode(session, batch, client):
        raise RuntimeError("batch failed")

    monkeypatch.setattr(scanner, "_run_batch", _explode)

    async def _run():
        progress = await scanner.scan("10.0.0.1-10.0.0.3")
        assert not scanner.is_scanning
        return progress

    progress = asyncio.run(_run())
    assert progress.state is ScanState.CANCELLED
    assert progress.error == "batch failed"


def test_invalid_spec_probes_nothing():
    probe = FakeProbe()
    snapshots: list[ScanProgress] = []
    scanner = SubnetScanner(ScanningConfig(max_addresses=100), probe=probe)
    scanner.subscribe(snapshots.append)

    async def _run():
        with pytest.raises(InvalidNetworkSpec):
            scanner.start_scan("192.168.1.0/24")

    asyncio.run(_run())
    assert probe.calls == []
    assert scanner.state is ScanState.IDLE
    assert snapshots[-1].error is not None
    assert "too large" in snapshots[-1].error


def test_second_scan_is_rejected_while_running():
    scanner = SubnetScanner(FAST, probe=FakeProbe(delay=0.01))

    async def _run():
        task = scanner.start_scan("10.0.0.1-10.0.0.5")
        with pytest.raises(ScanInProgressError):
            scanner.start_scan("10.0.0.1")
        return await task

    progress = asyncio.run(_run())
    assert progress.state is ScanState.COMPLETED


def test_found_devices_are_reconciled():
    reconciler = RecordingReconciler()
    scanner = SubnetScanner(
        FAST, reconciler=reconciler, probe=FakeProbe(wled={"10.0.0.2"})
    )

    asyncio.run(scanner.scan("10.0.0.1-10.0.0.3"))
    assert reconciler.calls == [("10.0.0.2", "wled-2")]


def test_probe_exceptions_count_as_checked():
    async def exploding(address, config, client=None):
        raise RuntimeError("boom")

    scanner = SubnetScanner(FAST, probe=exploding)
    progress = asyncio.run(scanner.scan("10.0.0.1-10.0.0.4"))

    assert progress.checked == 4
    assert progress.found == ()
