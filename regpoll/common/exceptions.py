"""
Custom Exception Classes for regpoll

Hierarchical exception structure for error handling across services.
Every failed exchange surfaces as a DeviceError subclass whose `kind`
names the failure category recorded in the reading log.
"""


class RegpollError(Exception):
    """Base exception for all regpoll errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(RegpollError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceNotFoundError(RegpollError):
    """Device index does not exist in the registry"""

    def __init__(self, index: int):
        self.index = index
        super().__init__(f"No device at index {index}", recoverable=True)


class DeviceError(RegpollError):
    """Failure of a single exchange with a remote device"""

    kind = "DeviceError"

    def __init__(self, message: str):
        self.detail = message
        super().__init__(f"{self.kind}: {message}", recoverable=True)


class CommunicationError(DeviceError):
    """Transport-level failures (TCP connect, write, read, deadline)"""

    kind = "CommunicationError"


class ConnectFailed(CommunicationError):
    """Could not establish the TCP connection within the timeout"""

    kind = "ConnectFailed"


class SendFailed(CommunicationError):
    """Writing the request to an open connection failed"""

    kind = "SendFailed"


class ReceiveFailed(CommunicationError):
    """Connection errored while the response was being read"""

    kind = "ReceiveFailed"


class ExchangeTimeout(CommunicationError):
    """No complete response within the per-attempt deadline"""

    kind = "Timeout"


class ProtocolError(DeviceError):
    """Response was received but could not be accepted"""

    kind = "ProtocolError"


class MalformedResponse(ProtocolError):
    """Response too short, odd byte count, or otherwise structurally invalid"""

    kind = "MalformedResponse"


class UnexpectedFunctionCode(ProtocolError):
    """Response function code is neither 0x03 nor 0x83"""

    kind = "UnexpectedFunctionCode"

    def __init__(self, got: int):
        self.got = got
        super().__init__(f"function code 0x{got:02X} in response")


class ModbusExceptionResponse(ProtocolError):
    """Device returned a well-formed Modbus exception response"""

    kind = "ModbusException"

    def __init__(self, code: int, name: str | None = None):
        self.code = code
        label = f" ({name})" if name else ""
        super().__init__(f"exception code {code}{label}")
