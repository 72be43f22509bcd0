"""
Modbus TCP Exchange Engine

Performs one Read Holding Registers round trip per call on a fresh TCP
connection: connect, send, accumulate the response under a deadline,
decode, close.
"""

import asyncio

from regpoll.common.config import DeviceConfig, PollRequest
from regpoll.common.exceptions import (
    ConnectFailed,
    ExchangeTimeout,
    MalformedResponse,
    ReceiveFailed,
    SendFailed,
)
from regpoll.common.logging_setup import get_service_logger

from .frame_codec import (
    EXCEPTION_RESPONSE_LENGTH,
    FUNCTION_CODE_OFFSET,
    decode_read_response,
    encode_read_request,
    expected_response_length,
    is_exception_function_code,
)
from .transaction import TransactionIdGenerator, shared_generator

logger = get_service_logger("device.exchange")

# Upper bound on waiting for the peer to acknowledge a graceful close
CLOSE_TIMEOUT_S = 1.0


class ModbusTcpExchange:
    """
    Single-shot Modbus TCP client.

    No connection is kept between calls; every exchange opens its own
    socket and closes it exactly once before returning or raising.
    """

    def __init__(
        self,
        transaction_ids: TransactionIdGenerator | None = None,
        strict_correlation: bool = False,
    ):
        self._ids = transaction_ids or shared_generator()
        self.strict_correlation = strict_correlation

    async def exchange(
        self,
        device: DeviceConfig,
        request: PollRequest,
        timeout: float,
    ) -> list[int]:
        """
        Read `request.quantity` holding registers from `device`.

        Args:
            device: Target device
            request: Register range to read
            timeout: Per-phase deadline in seconds (connect, send, receive)

        Returns:
            Register values, exactly `request.quantity` of them

        Raises:
            ConnectFailed, SendFailed, ReceiveFailed, ExchangeTimeout,
            MalformedResponse, UnexpectedFunctionCode, ModbusExceptionResponse
        """
        expected = expected_response_length(request.quantity)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(device.host, device.port),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectFailed(
                f"no connection to {device.host}:{device.port} within {timeout:g}s"
            ) from e
        except (OSError, UnicodeError) as e:
            # Malformed host names fail IDNA encoding before any socket is made
            raise ConnectFailed(f"{device.host}:{device.port}: {e}") from e

        abort = False
        try:
            transaction_id = self._ids.next()
            frame = encode_read_request(
                transaction_id,
                device.unit_id,
                request.start_address,
                request.quantity,
            )

            try:
                writer.write(frame)
                await asyncio.wait_for(writer.drain(), timeout=timeout)
            except asyncio.TimeoutError as e:
                abort = True
                raise SendFailed(f"write not flushed within {timeout:g}s") from e
            except OSError as e:
                abort = True
                raise SendFailed(str(e) or type(e).__name__) from e

            try:
                raw = await asyncio.wait_for(
                    self._accumulate(reader, expected),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                abort = True
                raise ExchangeTimeout(
                    f"no complete response within {timeout:g}s"
                ) from e
            except OSError as e:
                abort = True
                raise ReceiveFailed(str(e) or type(e).__name__) from e

            response = decode_read_response(raw)

            if len(response.registers) != request.quantity:
                raise MalformedResponse(
                    f"expected {request.quantity} registers, got {len(response.registers)}"
                )

            self._check_correlation(device, transaction_id, response)

            return list(response.registers)

        finally:
            await self._close(writer, abort)

    async def _accumulate(self, reader: asyncio.StreamReader, expected: int) -> bytes:
        """
        Read until a complete frame is buffered or the peer closes.

        An exception response is shorter than `expected`, so the function
        code is inspected as soon as it has arrived.
        """
        buffer = bytearray()

        while True:
            if (
                len(buffer) > FUNCTION_CODE_OFFSET
                and is_exception_function_code(buffer[FUNCTION_CODE_OFFSET])
                and len(buffer) >= EXCEPTION_RESPONSE_LENGTH
            ):
                return bytes(buffer)

            if len(buffer) >= expected:
                return bytes(buffer)

            chunk = await reader.read(expected - len(buffer))
            if not chunk:
                # Peer closed; let the decoder judge what we have
                return bytes(buffer)
            buffer.extend(chunk)

    def _check_correlation(self, device: DeviceConfig, transaction_id: int, response) -> None:
        mismatches = []
        if response.transaction_id != transaction_id:
            mismatches.append(
                f"transaction id {response.transaction_id} != {transaction_id}"
            )
        if response.unit_id != device.unit_id:
            mismatches.append(f"unit id {response.unit_id} != {device.unit_id}")

        if not mismatches:
            return

        summary = ", ".join(mismatches)
        if self.strict_correlation:
            raise MalformedResponse(f"response does not match request ({summary})")

        logger.warning(
            f"Correlation mismatch from {device.host}:{device.port}: {summary}",
            extra={
                "device": device.name,
                "expected_transaction_id": transaction_id,
                "response_transaction_id": response.transaction_id,
            },
        )

    async def _close(self, writer: asyncio.StreamWriter, abort: bool) -> None:
        if abort:
            writer.transport.abort()
            return

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT_S)
        except (asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Connection close did not complete cleanly: {e!r}")
