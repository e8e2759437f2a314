from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from wledscan.core.addresses import normalize_address
from wledscan.errors import StoreError
from wledscan.models import DeviceCatalog, DeviceRecord

logger = logging.getLogger(__name__)

DEVICES_FILE = "devices.json"


class DeviceStore:
    """Device records keyed by normalized address.

    Records live in memory; ``save()`` writes them to ``path`` when one is
    given. Callers are expected to serialize lookup-then-create themselves.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._devices: list[DeviceRecord] = []
        self._write_lock = threading.Lock()
        if path is not None and path.exists():
            self._devices = self._load(path).devices

    @staticmethod
    def _load(path: Path) -> DeviceCatalog:
        try:
            with path.open("r") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in devices file: {path}\n{exc}") from exc

        try:
            return DeviceCatalog.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Invalid devices file: {path}\n{exc}") from exc

    @property
    def path(self) -> Path | None:
        return self._path

    def all(self) -> list[DeviceRecord]:
        return list(self._devices)

    def find(self, address: str) -> DeviceRecord | None:
        key = normalize_address(address)
        for device in self._devices:
            if normalize_address(device.address) == key:
                return device
        return None

    def get(self, tag: str) -> DeviceRecord | None:
        for device in self._devices:
            if str(device.tag) == tag:
                return device
        return None

    def create(self, **fields: Any) -> DeviceRecord:
        device = DeviceRecord(**fields)
        if self.find(device.address) is not None:
            raise ValueError(f"Device with address '{device.address}' already exists")
        self._devices.append(device)
        return device

    def update(self, device: DeviceRecord, **fields: Any) -> DeviceRecord:
        for name, value in fields.items():
            setattr(device, name, value)
        return device

    def delete(self, device: DeviceRecord) -> bool:
        for index, existing in enumerate(self._devices):
            if existing.tag == device.tag:
                del self._devices[index]
                return True
        return False

    def save(self) -> None:
        if self._path is None:
            return
        catalog = DeviceCatalog(devices=list(self._devices))
        payload = json.dumps(catalog.model_dump(mode="json"), indent=2)
        try:
            with self._write_lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._path.with_suffix(".tmp")
                tmp_path.write_text(payload)
                tmp_path.replace(self._path)
        except OSError as exc:
            raise StoreError(f"Could not write devices file {self._path}: {exc}") from exc
        logger.debug("Saved %d devices to %s", len(catalog.devices), self._path)


class Database:
    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._devices_path = data_dir / DEVICES_FILE

    @property
    def path(self) -> Path:
        return self._data_dir

    @property
    def devices_path(self) -> Path:
        return self._devices_path

    def ensure_dirs(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)

    def device_store(self) -> DeviceStore:
        return DeviceStore(self._devices_path)

    def init(self) -> None:
        self.ensure_dirs()
        if not self._devices_path.exists():
            DeviceStore(self._devices_path).save()
