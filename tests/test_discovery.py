"""Tests for mDNS discovery with a fake zeroconf stack."""

from __future__ import annotations

import asyncio

import pytest
from zeroconf import ServiceStateChange

from wledscan.config import DiscoveryConfig, ScanningConfig
from wledscan.core import discovery, probe
from wledscan.core.discovery import DiscoveryListener, service_display_name
from wledscan.core.probe import IdentityCheck
from wledscan.models import DeviceInfo, DeviceStateInfo, ProbeFailure

SERVICE_TYPE = "_http._tcp.local."


class FakeAsyncZeroconf:
    def __init__(self) -> None:
        self.zeroconf = object()
        self.closed = False

    async def async_close(self) -> None:
        self.closed = True


class FakeBrowser:
    instances: list[FakeBrowser] = []

    def __init__(self, zc, types, handlers) -> None:
        self.types = types
        self.handlers = handlers
        self.cancelled = False
        FakeBrowser.instances.append(self)

    def announce(self, name: str, change=ServiceStateChange.Added) -> None:
        for handler in self.handlers:
            handler(
                zeroconf=None,
                service_type=SERVICE_TYPE,
                name=name,
                state_change=change,
            )

    async def async_cancel(self) -> None:
        self.cancelled = True


class RecordingReconciler:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def reconcile(self, address, name, info=None):
        self.calls.append((address, name))


@pytest.fixture
def fake_zeroconf(monkeypatch: pytest.MonkeyPatch):
    FakeBrowser.instances = []
    monkeypatch.setattr(discovery, "AsyncZeroconf", FakeAsyncZeroconf)
    monkeypatch.setattr(discovery, "AsyncServiceBrowser", FakeBrowser)

    async def _connect_peer(address, port, timeout):
        if address.startswith("10.9."):
            raise OSError("connection refused")
        return address

    monkeypatch.setattr(probe, "connect_peer", _connect_peer)
    return FakeBrowser


def _listener(
    addresses: dict[str, list[str]], wled: set[str], reconciler=None
) -> tuple[DiscoveryListener, list[str]]:
    verified: list[str] = []

    async def _verify(address, config, client=None):
        verified.append(address)
        if address in wled:
            return IdentityCheck(DeviceStateInfo(info=DeviceInfo(name="WLED")))
        return IdentityCheck(None, ProbeFailure.SCHEMA, "Not a WLED device")

    listener = DiscoveryListener(
        DiscoveryConfig(), ScanningConfig(), reconciler, verify=_verify
    )

    async def _resolve(service_type, name):
        return addresses.get(name, []), 80

    listener._resolve = _resolve  # type: ignore[method-assign]
    return listener, verified


def test_service_display_name():
    assert service_display_name(f"Desk.{SERVICE_TYPE}", SERVICE_TYPE) == "Desk"
    assert service_display_name("odd.name.", SERVICE_TYPE) == "odd.name"


def test_verified_services_are_reconciled(fake_zeroconf):
    reconciler = RecordingReconciler()
    listener, verified = _listener(
        {
            f"Desk.{SERVICE_TYPE}": ["192.168.1.20"],
            f"Printer.{SERVICE_TYPE}": ["192.168.1.30"],
        },
        wled={"192.168.1.20"},
        reconciler=reconciler,
    )

    async def _run():
        async with listener:
            browser = fake_zeroconf.instances[0]
            browser.announce(f"Desk.{SERVICE_TYPE}")
            browser.announce(f"Printer.{SERVICE_TYPE}")
            await asyncio.sleep(0)
            await listener.wait_idle()
            return listener.discovered, browser

    found, browser = asyncio.run(_run())
    assert sorted(verified) == ["192.168.1.20", "192.168.1.30"]
    assert [result.address for result in found] == ["192.168.1.20"]
    assert found[0].name == "Desk"
    assert reconciler.calls == [("192.168.1.20", "Desk")]
    assert browser.types == [SERVICE_TYPE]
    assert browser.cancelled


def test_repeated_announcements_are_handled_once(fake_zeroconf):
    listener, verified = _listener(
        {f"Desk.{SERVICE_TYPE}": ["192.168.1.20"]}, wled={"192.168.1.20"}
    )

    async def _run():
        async with listener:
            browser = fake_zeroconf.instances[0]
            for _ in range(3):
                browser.announce(f"Desk.{SERVICE_TYPE}")
            await asyncio.sleep(0)
            await listener.wait_idle()

    asyncio.run(_run())
    assert verified == ["192.168.1.20"]


def test_removed_services_are_ignored(fake_zeroconf):
    listener, verified = _listener(
        {f"Desk.{SERVICE_TYPE}": ["192.168.1.20"]}, wled={"192.168.1.20"}
    )

    async def _run():
        async with listener:
            fake_zeroconf.instances[0].announce(
                f"Desk.{SERVICE_TYPE}", ServiceStateChange.Removed
            )
            await asyncio.sleep(0)
            await listener.wait_idle()

    asyncio.run(_run())
    assert verified == []


def test_connect_falls_through_to_next_address(fake_zeroconf):
    listener, verified = _listener(
        {f"Desk.{SERVICE_TYPE}": ["10.9.0.1", "192.168.1.20"]},
        wled={"192.168.1.20"},
    )

    async def _run():
        async with listener:
            return await listener.handle_service(SERVICE_TYPE, f"Desk.{SERVICE_TYPE}")

    result = asyncio.run(_run())
    assert result is not None
    assert result.address == "192.168.1.20"
    assert verified == ["192.168.1.20"]


def test_unreachable_service_is_dropped(fake_zeroconf):
    listener, verified = _listener(
        {f"Desk.{SERVICE_TYPE}": ["10.9.0.1"]}, wled={"10.9.0.1"}
    )

    async def _run():
        async with listener:
            return await listener.handle_service(SERVICE_TYPE, f"Desk.{SERVICE_TYPE}")

    assert asyncio.run(_run()) is None
    assert verified == []


def test_start_failure_is_reported(monkeypatch: pytest.MonkeyPatch):
    class BrokenZeroconf:
        def __init__(self) -> None:
            raise OSError("no multicast")

    monkeypatch.setattr(discovery, "AsyncZeroconf", BrokenZeroconf)
    listener = DiscoveryListener(DiscoveryConfig(), ScanningConfig())

    async def _run():
        with pytest.raises(RuntimeError, match="mDNS"):
            await listener.start()

    asyncio.run(_run())
    assert not listener.running
