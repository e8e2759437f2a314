"""Masking of addresses and identifiers in command output (``--redact``)."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field


@dataclass
class Redactor:
    enabled: bool = True
    _mac_map: dict[str, int] = field(default_factory=dict)
    _mac_counter: int = 0

    def redact_address(self, address: str) -> str:
        """Keep only the host part that tells devices apart on one network."""
        if not self.enabled:
            return address
        try:
            parsed = ipaddress.ip_address(address.split("%", 1)[0])
        except ValueError:
            # hostname such as wled-kitchen.local
            label, dot, rest = address.partition(".")
            return f"{label[:1]}***{dot}{rest}" if label else address
        if parsed.version == 4:
            return f"x.x.x.{address.rsplit('.', 1)[-1]}"
        return f"x:x:x:{parsed.exploded.rsplit(':', 1)[-1]}"

    def redact_mac(self, mac: str | None) -> str:
        if mac is None:
            return ""
        if not self.enabled:
            return mac
        # WLED reports the MAC as 12 hex digits without separators
        cleaned = mac.replace(":", "").replace("-", "").lower()
        if len(cleaned) != 12:
            return mac
        counter = self._mac_map.get(cleaned)
        if counter is None:
            self._mac_counter += 1
            counter = self._mac_counter
            self._mac_map[cleaned] = counter
        return f"{cleaned[:6]}xxxx{counter:02d}"

    def redact_version(self, version: str | None) -> str:
        if version is None:
            return ""
        if not self.enabled or "." not in version:
            return version
        major = version.split(".", 1)[0]
        return f"{major}.x"
