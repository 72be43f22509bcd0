"""
Register Simulator

Modbus TCP server that serves fixed holding-register values for local
testing of the poller. Reads are answered by pymodbus; registers outside
the configured block produce an Illegal Data Address exception.

Usage:
    python -m regpoll simulate --port 5020 --unit 1 --values 42,255,7
"""

from pymodbus.datastore import (
    ModbusSequentialDataBlock,
    ModbusServerContext,
    ModbusSlaveContext,
)
from pymodbus.server import ServerAsyncStop, StartAsyncTcpServer

from regpoll.common.logging_setup import get_service_logger

logger = get_service_logger("simulator")

HOLDING_REGISTERS_FC = 3


class RegisterSimulator:
    """
    Modbus TCP server exposing the same holding-register block on each unit id.
    """

    def __init__(
        self,
        values: list[int],
        unit_ids: list[int] | None = None,
        host: str = "127.0.0.1",
        port: int = 5020,  # Use non-standard port to avoid conflicts
        start_address: int = 0,
    ):
        if not values:
            raise ValueError("simulator needs at least one register value")
        bad = [v for v in values if not 0 <= v <= 0xFFFF]
        if bad:
            raise ValueError(f"register values must be 0-65535: {bad}")

        self.values = list(values)
        self.unit_ids = list(unit_ids or [1])
        self.host = host
        self.port = port
        self.start_address = start_address

    def _create_slave_context(self) -> ModbusSlaveContext:
        # Slave contexts read block address N+1 for request address N
        return ModbusSlaveContext(
            hr=ModbusSequentialDataBlock(self.start_address + 1, list(self.values)),
        )

    def build_context(self) -> ModbusServerContext:
        slaves = {unit_id: self._create_slave_context() for unit_id in self.unit_ids}
        return ModbusServerContext(slaves=slaves, single=False)

    async def run(self) -> None:
        """Start the Modbus TCP server and serve until cancelled."""
        context = self.build_context()

        logger.info(
            f"Starting simulator on {self.host}:{self.port} "
            f"(units {self.unit_ids}, registers {self.start_address}-"
            f"{self.start_address + len(self.values) - 1})"
        )

        await StartAsyncTcpServer(
            context=context,
            address=(self.host, self.port),
        )

    async def stop(self) -> None:
        """Stop a server started by run()."""
        await ServerAsyncStop()
        logger.info("Simulator stopped")
