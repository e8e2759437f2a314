"""Mock WLED controller for development and testing.

Serves just enough of the WLED JSON API over plain asyncio streams for
discovery, refresh and firmware upload to work against it.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from asyncio import StreamReader, StreamWriter

logger = logging.getLogger(__name__)

REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}

MAX_HEADER_BYTES = 16 * 1024


@dataclass
class MockWLEDDevice:
    """Mock WLED controller with a single segment."""

    name: str = "WLED Mock"
    version: str = "0.14.4"
    brand: str = "WLED"
    product: str = "FOSS"
    mac: str = "aabbccddeeff"
    arch: str = "esp32"
    host: str = "0.0.0.0"
    port: int = 80

    on: bool = True
    brightness: int = 128
    color: tuple[int, int, int] = (255, 160, 0)

    received_firmware: list[bytes] = field(default_factory=list, repr=False)
    _server: asyncio.Server | None = field(default=None, repr=False)

    @property
    def bound_port(self) -> int:
        """Port actually listened on (useful when started with port 0)."""
        if self._server is None or not self._server.sockets:
            return self.port
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        """Start the mock device server."""
        self._server = await asyncio.start_server(
            self._handle_client, self.host, self.port
        )
        logger.info("Mock WLED '%s' listening on port %d", self.name, self.bound_port)

    async def stop(self) -> None:
        """Stop the mock device server."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Mock WLED '%s' stopped", self.name)

    async def run_forever(self) -> None:
        """Run the server until interrupted."""
        await self.start()
        if self._server:
            await self._server.serve_forever()

    def info_payload(self) -> dict[str, Any]:
        return {
            "ver": self.version,
            "name": self.name,
            "brand": self.brand,
            "product": self.product,
            "mac": self.mac,
            "arch": self.arch,
        }

    def state_payload(self) -> dict[str, Any]:
        return {
            "on": self.on,
            "bri": self.brightness,
            "seg": [{"id": 0, "col": [list(self.color), [0, 0, 0], [0, 0, 0]]}],
        }

    async def _handle_client(
        self, reader: "StreamReader", writer: "StreamWriter"
    ) -> None:
        """Serve a single HTTP request, then close the connection."""
        addr = writer.get_extra_info("peername")
        try:
            head = await reader.readuntil(b"\r\n\r\n")
        except (asyncio.IncompleteReadError, asyncio.LimitOverrunError):
            # plain TCP liveness checks connect and close without a request
            logger.debug("Connection from %s closed without a request", addr)
            writer.close()
            return

        try:
            if len(head) > MAX_HEADER_BYTES:
                await self._respond(writer, 400, {"error": "header too large"})
                return
            request_line, *header_lines = head.decode("latin-1").split("\r\n")
            method, path, _version = request_line.split(" ", 2)
            headers = {}
            for line in header_lines:
                if ":" in line:
                    key, value = line.split(":", 1)
                    headers[key.strip().lower()] = value.strip()
            length = int(headers.get("content-length", "0") or 0)
            body = await reader.readexactly(length) if length else b""
            logger.debug("%s %s from %s", method, path, addr)
            status, payload = self._route(method, path.split("?", 1)[0], body)
            await self._respond(writer, status, payload)
        except (ValueError, asyncio.IncompleteReadError):
            await self._respond(writer, 400, {"error": "bad request"})
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Client disconnected: %s", addr)
        finally:
            writer.close()

    def _route(self, method: str, path: str, body: bytes) -> tuple[int, Any]:
        if path == "/update":
            if method != "POST":
                return 405, {"error": "method not allowed"}
            self.received_firmware.append(body)
            logger.info("Received firmware upload (%d bytes)", len(body))
            return 200, {"success": True}
        if method != "GET":
            return 405, {"error": "method not allowed"}
        if path == "/json/si":
            return 200, {"state": self.state_payload(), "info": self.info_payload()}
        if path == "/json/info":
            return 200, self.info_payload()
        if path == "/json/state":
            return 200, self.state_payload()
        return 404, {"error": "not found"}

    async def _respond(self, writer: "StreamWriter", status: int, payload: Any) -> None:
        body = json.dumps(payload).encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {REASONS.get(status, 'Error')}\r\n"
            "Content-Type: application/json\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        writer.write(head.encode("latin-1") + body)
        await writer.drain()


async def run_mock_device(
    name: str = "WLED Mock",
    port: int = 80,
    host: str = "0.0.0.0",
    mac: str = "aabbccddeeff",
) -> None:
    """Run a mock WLED controller."""
    device = MockWLEDDevice(name=name, port=port, host=host, mac=mac)
    await device.run_forever()
