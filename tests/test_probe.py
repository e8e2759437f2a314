"""Tests for probing and verifying single addresses."""

from __future__ import annotations

import asyncio
import json
import socket

import httpx

from wledscan.config import DevicesConfig, ScanningConfig
from wledscan.core import WLEDClient, check_port, probe_address, verify_device
from wledscan.core.probe import device_url
from wledscan.mock_device import MockWLEDDevice
from wledscan.models import ProbeFailure

SI_PAYLOAD = {
    "state": {"on": True, "bri": 200, "seg": [{"col": [[255, 0, 16], [0, 0, 0]]}]},
    "info": {"ver": "0.14.4", "name": "Desk", "brand": "WLED", "mac": "a0b1c2d3e4f5"},
}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_device_url():
    assert device_url("192.168.1.5") == "http://192.168.1.5/json/si"
    assert device_url("192.168.1.5", 8080) == "http://192.168.1.5:8080/json/si"
    assert device_url("fe80::1", 80, "/update") == "http://[fe80::1]/update"


def test_verify_device_accepts_wled_payload():
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        return httpx.Response(200, json=SI_PAYLOAD)

    async def _run():
        async with _client(handler) as client:
            return await verify_device("192.168.1.5", ScanningConfig(), client)

    check = asyncio.run(_run())
    assert check.is_wled
    assert check.info is not None
    assert check.info.info.name == "Desk"
    assert check.info.info.version == "0.14.4"
    assert requested == ["/json/si"]


def test_verify_device_http_error_is_protocol_failure():
    async def _run():
        async with _client(lambda request: httpx.Response(404)) as client:
            return await verify_device("192.168.1.5", ScanningConfig(), client)

    check = asyncio.run(_run())
    assert not check.is_wled
    assert check.failure is ProbeFailure.PROTOCOL
    assert check.error == "HTTP 404"


def test_verify_device_rejects_non_wled_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>router login</html>")

    async def _run():
        async with _client(handler) as client:
            return await verify_device("192.168.1.1", ScanningConfig(), client)

    check = asyncio.run(_run())
    assert check.failure is ProbeFailure.SCHEMA


def test_verify_device_requires_info_object():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"state": {"on": True}})

    async def _run():
        async with _client(handler) as client:
            return await verify_device("192.168.1.1", ScanningConfig(), client)

    assert asyncio.run(_run()).failure is ProbeFailure.SCHEMA


def test_verify_device_transport_error_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def _run():
        async with _client(handler) as client:
            return await verify_device("192.168.1.1", ScanningConfig(), client)

    check = asyncio.run(_run())
    assert check.failure is ProbeFailure.NETWORK
    assert "refused" in (check.error or "")


def test_verify_device_total_timeout_is_network_failure():
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return httpx.Response(200, json=SI_PAYLOAD)

    config = ScanningConfig(request_timeout=3.0, resource_timeout=0.05)

    async def _run():
        async with _client(handler) as client:
            return await verify_device("192.168.1.5", config, client)

    check = asyncio.run(_run())
    assert not check.is_wled
    assert check.failure is ProbeFailure.NETWORK
    assert check.error == "timeout"


def test_check_port_closed():
    reachable, error = asyncio.run(check_port("127.0.0.1", _free_port(), 1.0))
    assert reachable is False
    assert error


def test_probe_address_against_mock_device():
    async def _run():
        device = MockWLEDDevice(name="Shelf", host="127.0.0.1", port=0)
        await device.start()
        try:
            config = ScanningConfig(port=device.bound_port)
            async with httpx.AsyncClient(trust_env=False) as client:
                return await probe_address("127.0.0.1", config, client)
        finally:
            await device.stop()

    outcome = asyncio.run(_run())
    assert outcome.reachable
    assert outcome.is_wled
    assert outcome.name == "Shelf"
    assert outcome.version == "0.14.4"
    assert outcome.failure is None


def test_probe_address_unreachable():
    config = ScanningConfig(port=_free_port(), connect_timeout=1.0)
    outcome = asyncio.run(probe_address("127.0.0.1", config))
    assert not outcome.reachable
    assert not outcome.is_wled
    assert outcome.failure is ProbeFailure.UNREACHABLE


def test_client_get_state_info():
    async def _run():
        http = _client(lambda request: httpx.Response(200, json=SI_PAYLOAD))
        async with WLEDClient(ScanningConfig(), DevicesConfig(), http) as client:
            payload = await client.get_state_info("192.168.1.5")
        await http.aclose()
        return payload

    payload = asyncio.run(_run())
    assert payload.state is not None
    assert payload.state.bri == 200
    assert payload.state.primary_color() == 0xFF0010


def test_client_push_firmware(tmp_path):
    firmware = tmp_path / "wled.bin"
    firmware.write_bytes(b"firmware-bytes")
    uploads: list[tuple[str, str, bytes]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        uploads.append((request.method, request.url.path, request.content))
        return httpx.Response(200, content=json.dumps({"success": True}))

    async def _run():
        http = _client(handler)
        async with WLEDClient(ScanningConfig(), DevicesConfig(), http) as client:
            await client.push_firmware("192.168.1.5", firmware)
        await http.aclose()

    asyncio.run(_run())
    method, path, body = uploads[0]
    assert (method, path) == ("POST", "/update")
    assert b"firmware-bytes" in body
    assert b'name="update"' in body
