from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from wledscan.config import ScanningConfig
from wledscan.core.addresses import strip_zone
from wledscan.models import (
    UNKNOWN_DEVICE_NAME,
    DeviceStateInfo,
    ProbeFailure,
    ProbeOutcome,
)

logger = logging.getLogger(__name__)

WLED_PORT = 80
WLED_INFO_PATH = "/json/si"


def device_url(address: str, port: int = WLED_PORT, path: str = WLED_INFO_PATH) -> str:
    host = f"[{address}]" if ":" in address else address
    if port != WLED_PORT:
        host = f"{host}:{port}"
    return f"http://{host}{path}"


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def connect_peer(address: str, port: int, timeout: float) -> str:
    """Open a TCP connection, close it again and return the peer address."""
    _reader, writer = await asyncio.wait_for(
        asyncio.open_connection(address, port), timeout=timeout
    )
    try:
        peer = writer.get_extra_info("peername")
        return strip_zone(str(peer[0])) if peer else address
    finally:
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()


async def check_port(
    address: str, port: int, timeout: float
) -> tuple[bool, str | None]:
    try:
        await connect_peer(address, port, timeout)
    except (asyncio.TimeoutError, TimeoutError):
        return False, "timeout"
    except OSError as exc:
        return False, _describe(exc)
    return True, None


@dataclass(frozen=True)
class IdentityCheck:
    info: DeviceStateInfo | None
    failure: ProbeFailure | None = None
    error: str | None = None

    @property
    def is_wled(self) -> bool:
        return self.info is not None


async def verify_device(
    address: str,
    config: ScanningConfig,
    client: httpx.AsyncClient | None = None,
) -> IdentityCheck:
    """Ask ``address`` for ``/json/si`` and check that the answer is WLED's."""
    url = device_url(address, config.port)
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=config.request_timeout)
    try:
        response = await asyncio.wait_for(
            http.get(url, timeout=config.request_timeout),
            timeout=config.resource_timeout,
        )
    except (asyncio.TimeoutError, TimeoutError):
        return IdentityCheck(None, ProbeFailure.NETWORK, "timeout")
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        return IdentityCheck(None, ProbeFailure.NETWORK, _describe(exc))
    finally:
        if owns_client:
            await http.aclose()

    if not response.is_success:
        return IdentityCheck(
            None, ProbeFailure.PROTOCOL, f"HTTP {response.status_code}"
        )

    try:
        payload = DeviceStateInfo.model_validate_json(response.content)
    except ValidationError:
        return IdentityCheck(None, ProbeFailure.SCHEMA, "Not a WLED device")
    return IdentityCheck(payload)


async def probe_address(
    address: str,
    config: ScanningConfig,
    client: httpx.AsyncClient | None = None,
) -> ProbeOutcome:
    started = time.monotonic()
    logger.debug("Checking %s", address)

    reachable, error = await check_port(address, config.port, config.connect_timeout)
    if not reachable:
        logger.debug("No connection to %s (%s)", address, error)
        return ProbeOutcome(
            address=address,
            reachable=False,
            is_wled=False,
            elapsed=time.monotonic() - started,
            error=error,
            failure=ProbeFailure.UNREACHABLE,
        )

    check = await verify_device(address, config, client)
    elapsed = time.monotonic() - started
    if check.info is None:
        logger.debug("%s is not a WLED device (%s)", address, check.error)
        return ProbeOutcome(
            address=address,
            reachable=True,
            is_wled=False,
            elapsed=elapsed,
            error=check.error,
            failure=check.failure,
        )

    info = check.info.info
    name = info.name or UNKNOWN_DEVICE_NAME
    logger.info("Found WLED device '%s' at %s", name, address)
    return ProbeOutcome(
        address=address,
        reachable=True,
        is_wled=True,
        name=name,
        version=info.version,
        brand=info.brand,
        info=info,
        elapsed=elapsed,
    )
