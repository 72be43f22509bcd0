"""
Device Manager

Holds the ordered device list edited by collaborators and snapshotted
by the scheduler before each pass.
"""

import threading
from typing import Iterable

from regpoll.common.config import DeviceConfig
from regpoll.common.exceptions import DeviceNotFoundError
from regpoll.common.logging_setup import get_service_logger

logger = get_service_logger("device.manager")


class DeviceRegistry:
    """
    Thread-safe, index-addressed device list.

    Edits never affect a pass in progress: the scheduler iterates the
    tuple returned by snapshot().
    """

    def __init__(self, devices: Iterable[DeviceConfig] = ()):
        self._devices: list[DeviceConfig] = list(devices)
        self._lock = threading.Lock()

    def add_device(self, name: str, host: str, port: int = 502, unit_id: int = 1) -> DeviceConfig:
        """Append a device; validation errors raise ConfigError"""
        device = DeviceConfig(name=name, host=host, port=port, unit_id=unit_id)
        self.append(device)
        return device

    def append(self, device: DeviceConfig) -> int:
        """Append a validated device; returns the index it was stored at"""
        with self._lock:
            self._devices.append(device)
            index = len(self._devices) - 1
        logger.info(f"Registered device {index}: {device.name} host={device.host} port={device.port} unit_id={device.unit_id}")
        return index

    def update_device(self, index: int, device: DeviceConfig) -> DeviceConfig:
        """Replace the device at `index`"""
        with self._lock:
            self._check_index(index)
            previous = self._devices[index]
            self._devices[index] = device
        logger.info(f"Updated device {index}: {previous.name} -> {device.name}")
        return device

    def remove_device(self, index: int) -> DeviceConfig:
        """Remove and return the device at `index`"""
        with self._lock:
            self._check_index(index)
            device = self._devices.pop(index)
        logger.info(f"Removed device {index}: {device.name}")
        return device

    def get(self, index: int) -> DeviceConfig:
        with self._lock:
            self._check_index(index)
            return self._devices[index]

    def snapshot(self) -> tuple[DeviceConfig, ...]:
        with self._lock:
            return tuple(self._devices)

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._devices):
            raise DeviceNotFoundError(index)
