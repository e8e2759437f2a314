"""Expansion of user supplied network specifications into candidate addresses.

Supported forms, checked in this order:

* ``192.168.1.0/24``: CIDR, prefix 0-30, network and broadcast excluded
* ``192.168.1.10-192.168.1.20``: range within the last octet
* ``192.168.1.*``: wildcard, hosts 1-254
* anything else: a single address or hostname, passed through
"""

from __future__ import annotations

import ipaddress
import logging
import re
import socket

from wledscan.errors import InvalidNetworkSpec

logger = logging.getLogger(__name__)

MAX_CIDR_HOSTS = 254
MAX_SCAN_ADDRESSES = 1024
WILDCARD_HOSTS = range(1, 255)

_PREFIX_RE = re.compile(r"\d{1,2}")
_RANGE_RE = re.compile(r"[\d.\s-]+")


def _parse_ipv4(text: str) -> tuple[int, int, int, int] | None:
    try:
        address = ipaddress.IPv4Address(text.strip())
    except ValueError:
        return None
    first, second, third, fourth = address.packed
    return first, second, third, fourth


def _expand_cidr(spec: str) -> list[str]:
    base, _, prefix_text = spec.partition("/")
    prefix_text = prefix_text.strip()
    if not _PREFIX_RE.fullmatch(prefix_text):
        return []
    prefix = int(prefix_text)
    if not 0 <= prefix <= 30:
        return []
    try:
        network = ipaddress.IPv4Network(f"{base.strip()}/{prefix}", strict=False)
    except ValueError:
        return []

    count = min(network.num_addresses - 2, MAX_CIDR_HOSTS)
    first_host = int(network.network_address) + 1
    return [str(ipaddress.IPv4Address(first_host + offset)) for offset in range(count)]


def _expand_range(spec: str) -> list[str]:
    parts = spec.split("-")
    if len(parts) != 2:
        return []
    start = _parse_ipv4(parts[0])
    end = _parse_ipv4(parts[1])
    if start is None or end is None:
        return []
    if start[:3] != end[:3] or start[3] > end[3]:
        return []
    prefix = ".".join(str(octet) for octet in start[:3])
    return [f"{prefix}.{octet}" for octet in range(start[3], end[3] + 1)]


def _expand_wildcard(spec: str) -> list[str]:
    parts = spec.split(".")
    if len(parts) != 4 or parts[3] != "*":
        return []
    base = _parse_ipv4(".".join(parts[:3]) + ".0")
    if base is None:
        return []
    prefix = ".".join(str(octet) for octet in base[:3])
    return [f"{prefix}.{octet}" for octet in WILDCARD_HOSTS]


def enumerate_addresses(spec: str) -> list[str]:
    """Expand ``spec`` into candidate addresses; malformed input yields ``[]``."""
    spec = spec.strip()
    if not spec:
        return []
    if "/" in spec:
        return _expand_cidr(spec)
    if "-" in spec and _RANGE_RE.fullmatch(spec):
        return _expand_range(spec)
    if "*" in spec:
        return _expand_wildcard(spec)
    return [spec]


def resolve_scan_targets(
    spec: str, max_addresses: int = MAX_SCAN_ADDRESSES
) -> list[str]:
    """Like :func:`enumerate_addresses` but raise for unusable specifications."""
    spec = spec.strip()
    if not spec:
        raise InvalidNetworkSpec("Please enter a network to scan")

    addresses = enumerate_addresses(spec)
    if not addresses:
        raise InvalidNetworkSpec(f"Invalid network specification: {spec}")
    if len(addresses) > max_addresses:
        raise InvalidNetworkSpec(
            f"Network {spec} is too large ({len(addresses)} addresses, "
            f"max {max_addresses}). Use a smaller range."
        )
    return addresses


def strip_zone(address: str) -> str:
    """Drop an IPv6 scope suffix such as ``%en0``."""
    return address.split("%", 1)[0]


def normalize_address(address: str) -> str:
    value = address.strip().lower()
    for scheme in ("http://", "https://"):
        if value.startswith(scheme):
            value = value[len(scheme) :]
            break
    value = strip_zone(value.rstrip("/"))
    return value.rstrip(".")


def detect_local_network() -> str:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            local_ip = sock.getsockname()[0]
        network = ipaddress.ip_network(f"{local_ip}/24", strict=False)
        logger.debug("Detected local network: %s", network)
        return str(network)
    except OSError as exc:
        raise RuntimeError("Could not detect local network") from exc
