"""
Polling Service - Modbus Register Polling

Responsible for:
- Owning the device list and the reading log
- Running sequential poll passes on a fixed interval
- Exposing start/stop and observation to collaborators
- Serving the HTTP API until shutdown
"""

import asyncio
import signal
from datetime import datetime, timezone
from typing import Callable, Iterable

from aiohttp import web

from regpoll.common.config import DeviceConfig, PollSettings, ServiceConfig
from regpoll.common.exceptions import DeviceError
from regpoll.common.logging_setup import get_service_logger, log_device_read
from regpoll.common.scheduler import ScheduledLoop

from .device_manager import DeviceRegistry
from .exchange import ModbusTcpExchange
from .reading_log import Reading, ReadingCallback, ReadingLog

logger = get_service_logger("device")


class PollingService:
    """
    Sequential multi-device poller.

    States: stopped -> start_polling() -> running -> stop_polling() -> stopped.
    One pass at a time; within a pass, one device at a time.
    """

    def __init__(
        self,
        settings: PollSettings | None = None,
        devices: Iterable[DeviceConfig] = (),
        exchange: ModbusTcpExchange | None = None,
        reading_log: ReadingLog | None = None,
    ):
        self.settings = settings or PollSettings()
        self.device_registry = DeviceRegistry(devices)
        self.reading_log = reading_log or ReadingLog()
        self.exchange = exchange or ModbusTcpExchange(
            strict_correlation=self.settings.strict_correlation,
        )

        self._scheduler: ScheduledLoop | None = None
        self._pass_lock = asyncio.Lock()
        self._pass_count = 0
        self._start_time = datetime.now(timezone.utc)
        self._shutdown_event: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Device management
    # ------------------------------------------------------------------

    def add_device(self, name: str, host: str, port: int = 502, unit_id: int = 1) -> DeviceConfig:
        return self.device_registry.add_device(name, host, port, unit_id)

    def update_device(self, index: int, device: DeviceConfig) -> DeviceConfig:
        return self.device_registry.update_device(index, device)

    def remove_device(self, index: int) -> DeviceConfig:
        return self.device_registry.remove_device(index)

    @property
    def devices(self) -> tuple[DeviceConfig, ...]:
        return self.device_registry.snapshot()

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    @property
    def readings(self) -> tuple[Reading, ...]:
        return self.reading_log.snapshot()

    def on_reading(self, callback: ReadingCallback) -> Callable[[], None]:
        """Observe every inserted reading; returns an unsubscribe function"""
        return self.reading_log.subscribe(callback)

    def clear_readings(self) -> None:
        dropped = self.reading_log.clear()
        logger.info(f"Cleared {dropped} readings")

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    @property
    def is_polling(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    @property
    def pass_count(self) -> int:
        return self._pass_count

    async def start_polling(self) -> None:
        """Run one pass now, then one every interval. No-op when running."""
        if self.is_polling:
            return

        if self._scheduler is None:
            self._scheduler = ScheduledLoop(
                self.settings.interval_s,
                self._scheduled_pass,
                name="poll",
            )
        await self._scheduler.start()
        logger.info(
            f"Polling started ({len(self.device_registry)} devices, "
            f"every {self.settings.interval_s:g}s)"
        )

    def stop_polling(self) -> None:
        """Stop scheduling passes; an in-flight pass still completes."""
        if not self.is_polling:
            return

        self._scheduler.stop()
        logger.info("Polling stopped")

    async def join(self) -> None:
        """Wait until the scheduler task, including any in-flight pass, exits"""
        if self._scheduler:
            await self._scheduler.join()

    def get_scheduler_stats(self) -> dict | None:
        return self._scheduler.get_stats() if self._scheduler else None

    async def _scheduled_pass(self) -> None:
        await self.poll_pass()

    async def poll_pass(self) -> list[Reading]:
        """
        Poll every device once, in snapshot order.

        Returns:
            Readings produced by this pass, in device order
        """
        async with self._pass_lock:
            devices = self.device_registry.snapshot()
            request = self.settings.request
            timeout = self.settings.timeout_s
            results = []

            for device in devices:
                timestamp = datetime.now(timezone.utc)
                try:
                    registers = await self.exchange.exchange(device, request, timeout)
                    reading = Reading.ok(device, timestamp, registers)
                except DeviceError as e:
                    reading = Reading.failed(device, timestamp, describe_failure(e, device))
                except Exception as e:
                    logger.error(f"Unexpected error polling {device.name}: {e!r}")
                    reading = Reading.failed(
                        device,
                        timestamp,
                        f"UnexpectedError: {e!r} {_device_tag(device)}",
                    )

                self.reading_log.insert(reading)
                log_device_read(logger.logger, reading)
                results.append(reading)

            self._pass_count += 1
            return results

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    async def serve(self, service_config: ServiceConfig) -> None:
        """Start the HTTP API and polling, then block until a shutdown signal"""
        from .api import create_app

        self._shutdown_event = asyncio.Event()

        app = create_app(self)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, service_config.api_host, service_config.api_port)
        await site.start()
        logger.info(f"API server started on {service_config.api_host}:{service_config.api_port}")

        self._setup_signal_handlers()

        try:
            await self.start_polling()
            await self._shutdown_event.wait()
        finally:
            self.stop_polling()
            await self.join()
            await runner.cleanup()
            logger.info("Polling service stopped")

    def request_shutdown(self) -> None:
        if self._shutdown_event:
            self._shutdown_event.set()

    def uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self._start_time).total_seconds()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: self._handle_shutdown())

    def _handle_shutdown(self) -> None:
        logger.info("Received shutdown signal")
        self.request_shutdown()


def _device_tag(device: DeviceConfig) -> str:
    return f"[{device.host}:{device.port} unit {device.unit_id}]"


def describe_failure(error: DeviceError, device: DeviceConfig) -> str:
    """Human-readable failure text: kind, detail, and device address"""
    return f"{error} {_device_tag(device)}"
