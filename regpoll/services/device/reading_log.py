"""
Reading Log

Immutable poll-attempt records and the newest-first, in-memory log the
scheduler writes and collaborators read.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from regpoll.common.config import DeviceConfig
from regpoll.common.logging_setup import get_service_logger

logger = get_service_logger("device.readings")

ReadingCallback = Callable[["Reading"], None]


@dataclass(frozen=True)
class Reading:
    """Outcome of one poll attempt against one device"""
    device_name: str
    host: str
    port: int
    unit_id: int
    timestamp: datetime
    registers: tuple[int, ...] | None = None
    error: str | None = None

    def __post_init__(self):
        if (self.registers is None) == (self.error is None):
            raise ValueError("a reading carries exactly one of registers or error")

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, device: DeviceConfig, timestamp: datetime, registers: Iterable[int]) -> "Reading":
        return cls(
            device_name=device.name,
            host=device.host,
            port=device.port,
            unit_id=device.unit_id,
            timestamp=timestamp,
            registers=tuple(registers),
        )

    @classmethod
    def failed(cls, device: DeviceConfig, timestamp: datetime, error: str) -> "Reading":
        return cls(
            device_name=device.name,
            host=device.host,
            port=device.port,
            unit_id=device.unit_id,
            timestamp=timestamp,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_name": self.device_name,
            "host": self.host,
            "port": self.port,
            "unit_id": self.unit_id,
            "timestamp": self.timestamp.isoformat(),
            "registers": list(self.registers) if self.registers is not None else None,
            "error": self.error,
        }


class ReadingLog:
    """
    Ordered record of readings, newest first.

    Only insert() adds and only clear() removes. Readers get tuple
    snapshots, so they never observe a half-applied change.
    """

    def __init__(self):
        self._readings: list[Reading] = []
        self._subscribers: list[ReadingCallback] = []
        self._lock = threading.Lock()

    def insert(self, reading: Reading) -> None:
        """Prepend a reading and notify subscribers"""
        with self._lock:
            self._readings.insert(0, reading)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(reading)
            except Exception as e:
                logger.error(f"Reading subscriber {callback!r} failed: {e}")

    def clear(self) -> int:
        """Remove all readings; returns how many were dropped"""
        with self._lock:
            count = len(self._readings)
            self._readings = []
        return count

    def snapshot(self, limit: int | None = None) -> tuple[Reading, ...]:
        with self._lock:
            if limit is None:
                return tuple(self._readings)
            return tuple(self._readings[:limit])

    def subscribe(self, callback: ReadingCallback) -> Callable[[], None]:
        """
        Register a callback invoked once per inserted reading.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)
