from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .paths import default_config_path, default_data_dir, expand_path

CONFIG_ENV_VAR = "WLEDSCAN_CONFIG"


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class ScanningConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    default_network: str = ""
    port: int = Field(default=80, ge=1, le=65535)
    connect_timeout: float = Field(default=2.0, gt=0)
    request_timeout: float = Field(default=3.0, gt=0)
    resource_timeout: float = Field(default=5.0, gt=0)
    batch_size: int = Field(default=20, ge=1, le=255)
    batch_delay: float = Field(default=0.1, ge=0)
    max_addresses: int = Field(default=1024, ge=1)


class DiscoveryConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    service_type: str = "_http._tcp.local."
    duration: float = Field(default=10.0, gt=0)
    resolve_timeout: float = Field(default=3.0, gt=0)


class DevicesConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    refresh_timeout: float = Field(default=5.0, gt=0)
    update_timeout: float = Field(default=120.0, gt=0)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scanning: ScanningConfig = Field(default_factory=ScanningConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    devices: DevicesConfig = Field(default_factory=DevicesConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def _describe_errors(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "(root)"
        lines.append(f"  {location}: {error['msg']}")
    return "\n".join(lines)


def load_settings(path: Path) -> Settings:
    """Read ``path`` as TOML; both syntax and schema problems raise ``ValueError``."""
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(
            f"Invalid config file: {path}\n{_describe_errors(exc)}"
        ) from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_settings_toml(settings: Settings) -> str:
    scanning = settings.scanning
    discovery = settings.discovery
    devices = settings.devices
    lines = [
        "# wledscan configuration",
        "",
        "[database]",
        f"path = {_toml_string(settings.database.path)}",
        "",
        "[scanning]",
        "# empty: detect the local /24 at scan time",
        f"default_network = {_toml_string(scanning.default_network)}",
        f"port = {scanning.port}",
        f"connect_timeout = {scanning.connect_timeout}",
        f"request_timeout = {scanning.request_timeout}",
        f"resource_timeout = {scanning.resource_timeout}",
        f"batch_size = {scanning.batch_size}",
        f"batch_delay = {scanning.batch_delay}",
        f"max_addresses = {scanning.max_addresses}",
        "",
        "[discovery]",
        f"service_type = {_toml_string(discovery.service_type)}",
        f"duration = {discovery.duration}",
        f"resolve_timeout = {discovery.resolve_timeout}",
        "",
        "[devices]",
        f"refresh_timeout = {devices.refresh_timeout}",
        f"update_timeout = {devices.update_timeout}",
        "",
    ]
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
