"""
Configuration Dataclasses

Type-safe configuration structures for the poller.
Loaded from a YAML file by the CLI, or built directly by collaborators.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

# Modbus TCP practical PDU limit for function 0x03
MAX_READ_QUANTITY = 125
MAX_ADDRESS = 0xFFFF


@dataclass(frozen=True)
class DeviceConfig:
    """Identity and addressing for one remote Modbus TCP target"""
    name: str
    host: str
    port: int = 502
    unit_id: int = 1

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigError("device name is required")
        if not isinstance(self.host, str) or not self.host.strip():
            raise ConfigError(f"device '{self.name}': host is required")
        if not _is_int(self.port) or not 1 <= self.port <= 65535:
            raise ConfigError(f"device '{self.name}': port must be 1-65535, got {self.port!r}")
        if not _is_int(self.unit_id) or not 0 <= self.unit_id <= 255:
            raise ConfigError(f"device '{self.name}': unit_id must be 0-255, got {self.unit_id!r}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PollRequest:
    """Register range read from every device on each pass"""
    start_address: int = 0
    quantity: int = 10

    def __post_init__(self):
        if not _is_int(self.start_address) or not 0 <= self.start_address <= MAX_ADDRESS:
            raise ConfigError(f"start_address must be 0-{MAX_ADDRESS}, got {self.start_address!r}")
        if not _is_int(self.quantity) or not 1 <= self.quantity <= MAX_READ_QUANTITY:
            raise ConfigError(f"quantity must be 1-{MAX_READ_QUANTITY}, got {self.quantity!r}")
        if self.start_address + self.quantity - 1 > MAX_ADDRESS:
            raise ConfigError(
                f"register range {self.start_address}+{self.quantity} exceeds address space"
            )


@dataclass(frozen=True)
class PollSettings:
    """Polling parameters shared by all devices"""
    request: PollRequest = field(default_factory=PollRequest)
    interval_s: float = 5.0
    timeout_s: float = 3.0
    strict_correlation: bool = False  # Treat txid/unit mismatch as MalformedResponse

    def __post_init__(self):
        if not _is_number(self.interval_s) or self.interval_s <= 0:
            raise ConfigError(f"interval_s must be > 0, got {self.interval_s!r}")
        if not _is_number(self.timeout_s) or self.timeout_s <= 0:
            raise ConfigError(f"timeout_s must be > 0, got {self.timeout_s!r}")


@dataclass
class ServiceConfig:
    """Service runtime configuration"""
    log_level: str = "INFO"
    log_format: str = "json"  # json, text
    api_host: str = "127.0.0.1"
    api_port: int = 8085


@dataclass
class PollerConfig:
    """Complete poller configuration"""
    service: ServiceConfig = field(default_factory=ServiceConfig)
    polling: PollSettings = field(default_factory=PollSettings)
    devices: list[DeviceConfig] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": asdict(self.service),
            "polling": {
                "start_address": self.polling.request.start_address,
                "quantity": self.polling.request.quantity,
                "interval_s": self.polling.interval_s,
                "timeout_s": self.polling.timeout_s,
                "strict_correlation": self.polling.strict_correlation,
            },
            "devices": [d.to_dict() for d in self.devices],
        }


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' section must be a mapping, got {section!r}")
    return section


def load_config(data: dict | None) -> PollerConfig:
    """Load PollerConfig from dictionary (e.g., parsed YAML)"""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("top-level config must be a mapping")

    service_data = _section(data, "service")
    service = ServiceConfig(
        log_level=str(service_data.get("log_level", "INFO")),
        log_format=str(service_data.get("log_format", "json")).lower(),
        api_host=service_data.get("api_host", "127.0.0.1"),
        api_port=service_data.get("api_port", 8085),
    )
    if service.log_format not in ("json", "text"):
        raise ConfigError(f"log_format must be 'json' or 'text', got {service.log_format!r}")
    if not _is_int(service.api_port) or not 0 <= service.api_port <= 65535:
        raise ConfigError(f"api_port must be 0-65535, got {service.api_port!r}")

    polling_data = _section(data, "polling")
    strict = polling_data.get("strict_correlation", False)
    if not isinstance(strict, bool):
        raise ConfigError(f"strict_correlation must be true or false, got {strict!r}")

    polling = PollSettings(
        request=PollRequest(
            start_address=polling_data.get("start_address", 0),
            quantity=polling_data.get("quantity", 10),
        ),
        interval_s=polling_data.get("interval_s", 5.0),
        timeout_s=polling_data.get("timeout_s", 3.0),
        strict_correlation=strict,
    )

    device_list = data.get("devices") or []
    if not isinstance(device_list, list):
        raise ConfigError(f"devices must be a list, got {device_list!r}")

    devices = []
    for d in device_list:
        if not isinstance(d, dict):
            raise ConfigError(f"device entry must be a mapping, got {d!r}")
        devices.append(DeviceConfig(
            name=d.get("name", ""),
            host=d.get("host", ""),
            port=d.get("port", 502),
            unit_id=d.get("unit_id", 1),
        ))

    return PollerConfig(service=service, polling=polling, devices=devices)


def load_config_file(config_path: str | Path) -> PollerConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Parsed configuration

    Raises:
        ConfigError: File missing, unparsable, or with invalid values
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {config_path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from e

    return load_config(data)
