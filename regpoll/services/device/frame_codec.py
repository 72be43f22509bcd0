"""
MBAP Frame Codec

Pure encode/decode of Modbus TCP "Read Holding Registers" (0x03) frames.
No I/O and no state: the transaction id is supplied by the caller.

Request (12 bytes, big-endian):
    [txid:2][protocol:2 = 0][length:2 = 6][unit:1][fc:1 = 0x03][start:2][quantity:2]

Success response (9 + 2*quantity bytes):
    [txid:2][protocol:2][length:2][unit:1][fc:1 = 0x03][byte_count:1][registers...]

Exception response (9 bytes):
    [txid:2][protocol:2][length:2][unit:1][fc:1 = 0x83][exception_code:1]
"""

import struct
from dataclasses import dataclass

from regpoll.common.config import MAX_ADDRESS, MAX_READ_QUANTITY
from regpoll.common.exceptions import (
    MalformedResponse,
    ModbusExceptionResponse,
    UnexpectedFunctionCode,
)

READ_HOLDING_REGISTERS = 0x03
EXCEPTION_BIT = 0x80
READ_HOLDING_REGISTERS_EXCEPTION = READ_HOLDING_REGISTERS | EXCEPTION_BIT

PROTOCOL_ID = 0
REQUEST_PDU_LENGTH = 6  # unit id + function code + address + quantity

# Header: txid(2) + protocol(2) + length(2) + unit(1) + fc(1) + byte count / exception code(1)
FUNCTION_CODE_OFFSET = 7
MIN_RESPONSE_LENGTH = 9
EXCEPTION_RESPONSE_LENGTH = 9

_HEADER = struct.Struct(">HHHBB")
_REQUEST = struct.Struct(">HHHBBHH")

# Standard Modbus exception codes
EXCEPTION_CODE_NAMES = {
    0x01: "Illegal Function",
    0x02: "Illegal Data Address",
    0x03: "Illegal Data Value",
    0x04: "Slave Device Failure",
    0x05: "Acknowledge",
    0x06: "Slave Device Busy",
    0x08: "Memory Parity Error",
    0x0A: "Gateway Path Unavailable",
    0x0B: "Gateway Target Device Failed to Respond",
}


@dataclass(frozen=True)
class ReadResponse:
    """Decoded success response"""
    transaction_id: int
    protocol_id: int
    length: int
    unit_id: int
    function_code: int
    registers: tuple[int, ...]


def expected_response_length(quantity: int) -> int:
    """Byte length of a complete success response for `quantity` registers"""
    return MIN_RESPONSE_LENGTH + quantity * 2


def encode_read_request(
    transaction_id: int,
    unit_id: int,
    start_address: int,
    quantity: int,
) -> bytes:
    """
    Encode a Read Holding Registers request frame.

    Raises:
        ValueError: Any field outside its protocol range
    """
    if not 0 <= transaction_id <= 0xFFFF:
        raise ValueError(f"transaction id out of range: {transaction_id}")
    if not 0 <= unit_id <= 0xFF:
        raise ValueError(f"unit id out of range: {unit_id}")
    if not 0 <= start_address <= MAX_ADDRESS:
        raise ValueError(f"start address out of range: {start_address}")
    if not 1 <= quantity <= MAX_READ_QUANTITY:
        raise ValueError(f"quantity must be 1-{MAX_READ_QUANTITY}, got {quantity}")

    return _REQUEST.pack(
        transaction_id,
        PROTOCOL_ID,
        REQUEST_PDU_LENGTH,
        unit_id,
        READ_HOLDING_REGISTERS,
        start_address,
        quantity,
    )


def is_exception_function_code(function_code: int) -> bool:
    return bool(function_code & EXCEPTION_BIT)


def decode_read_response(data: bytes) -> ReadResponse:
    """
    Decode an accumulated response buffer.

    Transaction id and unit id are returned, not checked; correlating
    them with the request is the caller's job, as is comparing the
    register count with the requested quantity.

    Raises:
        MalformedResponse: Too short, odd byte count, or truncated data
        ModbusExceptionResponse: Function code 0x83
        UnexpectedFunctionCode: Any other function code except 0x03
    """
    if len(data) < MIN_RESPONSE_LENGTH:
        raise MalformedResponse(
            f"response too short ({len(data)} bytes, need at least {MIN_RESPONSE_LENGTH})"
        )

    transaction_id, protocol_id, length, unit_id, function_code = _HEADER.unpack_from(data)

    if function_code == READ_HOLDING_REGISTERS_EXCEPTION:
        code = data[8]
        raise ModbusExceptionResponse(code, EXCEPTION_CODE_NAMES.get(code))

    if function_code != READ_HOLDING_REGISTERS:
        raise UnexpectedFunctionCode(function_code)

    byte_count = data[8]
    if byte_count % 2:
        raise MalformedResponse(f"odd register byte count {byte_count}")

    payload = data[MIN_RESPONSE_LENGTH:MIN_RESPONSE_LENGTH + byte_count]
    if len(payload) < byte_count:
        raise MalformedResponse(
            f"truncated register data ({len(payload)} of {byte_count} bytes)"
        )

    registers = struct.unpack(f">{byte_count // 2}H", payload)

    return ReadResponse(
        transaction_id=transaction_id,
        protocol_id=protocol_id,
        length=length,
        unit_id=unit_id,
        function_code=function_code,
        registers=registers,
    )
