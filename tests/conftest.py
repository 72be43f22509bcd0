"""Shared fixtures: in-process fake Modbus TCP devices."""

import asyncio
import socket
import struct
from typing import Callable

import pytest

from regpoll.common.config import DeviceConfig


def success_frame(transaction_id: int, unit_id: int, registers: list[int]) -> bytes:
    data = struct.pack(f">{len(registers)}H", *registers)
    length = 3 + len(data)  # unit + fc + byte count + data
    return struct.pack(">HHHBBB", transaction_id, 0, length, unit_id, 0x03, len(data)) + data


def exception_frame(transaction_id: int, unit_id: int, code: int, function_code: int = 0x83) -> bytes:
    return struct.pack(">HHHBBB", transaction_id, 0, 3, unit_id, function_code, code)


def parse_request(request: bytes) -> dict:
    txid, protocol, length, unit, fc, start, quantity = struct.unpack(">HHHBBHH", request)
    return {
        "transaction_id": txid,
        "protocol_id": protocol,
        "length": length,
        "unit_id": unit,
        "function_code": fc,
        "start_address": start,
        "quantity": quantity,
    }


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


Responder = Callable[[dict], "bytes | list[bytes] | None"]


class FakeDevice:
    """
    Minimal Modbus TCP peer.

    The responder receives the parsed request and returns the reply bytes,
    a list of chunks (sent with `chunk_delay` between them), or None to
    stay silent until the client hangs up.
    """

    def __init__(
        self,
        responder: Responder,
        chunk_delay: float = 0.0,
        close_after_reply: bool = False,
    ):
        self.responder = responder
        self.chunk_delay = chunk_delay
        self.close_after_reply = close_after_reply
        self.requests: list[dict] = []
        self.connections = 0
        self.client_closed = asyncio.Event()
        self.port = 0
        self._server: asyncio.AbstractServer | None = None

    async def start(self) -> "FakeDevice":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            try:
                await asyncio.wait_for(self._server.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                pass

    def device(self, name: str = "fake", unit_id: int = 1) -> DeviceConfig:
        return DeviceConfig(name=name, host="127.0.0.1", port=self.port, unit_id=unit_id)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        try:
            raw = await reader.readexactly(12)
            request = parse_request(raw)
            self.requests.append(request)

            reply = self.responder(request)
            if reply is not None:
                chunks = reply if isinstance(reply, list) else [reply]
                for i, chunk in enumerate(chunks):
                    if i and self.chunk_delay:
                        await asyncio.sleep(self.chunk_delay)
                    writer.write(chunk)
                    await writer.drain()

            if self.close_after_reply:
                return

            # Wait for the client to hang up
            while await reader.read(1024):
                pass
            self.client_closed.set()
        except (asyncio.IncompleteReadError, ConnectionError):
            self.client_closed.set()
        finally:
            writer.close()


def echo_registers(registers: list[int]) -> Responder:
    """Responder answering every request with `registers`, echoing txid and unit"""
    def respond(request: dict) -> bytes:
        return success_frame(request["transaction_id"], request["unit_id"], registers)
    return respond


def silent(request: dict) -> None:
    return None


@pytest.fixture
async def fake_device():
    """Factory fixture: `await fake_device(responder, **options)`"""
    started: list[FakeDevice] = []

    async def factory(responder: Responder, **options) -> FakeDevice:
        device = await FakeDevice(responder, **options).start()
        started.append(device)
        return device

    yield factory

    for device in started:
        await device.stop()
