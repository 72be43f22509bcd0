"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses and YAML loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-interval async scheduler
"""

from .config import (
    DeviceConfig,
    PollRequest,
    PollSettings,
    ServiceConfig,
    PollerConfig,
    load_config,
    load_config_file,
)
from .exceptions import (
    RegpollError,
    ConfigError,
    DeviceNotFoundError,
    DeviceError,
    CommunicationError,
    ConnectFailed,
    SendFailed,
    ReceiveFailed,
    ExchangeTimeout,
    ProtocolError,
    MalformedResponse,
    UnexpectedFunctionCode,
    ModbusExceptionResponse,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    configure_service_loggers,
    resolve_log_settings,
    log_device_read,
)
from .scheduler import ScheduledLoop

__all__ = [
    # Config
    "DeviceConfig",
    "PollRequest",
    "PollSettings",
    "ServiceConfig",
    "PollerConfig",
    "load_config",
    "load_config_file",
    # Exceptions
    "RegpollError",
    "ConfigError",
    "DeviceNotFoundError",
    "DeviceError",
    "CommunicationError",
    "ConnectFailed",
    "SendFailed",
    "ReceiveFailed",
    "ExchangeTimeout",
    "ProtocolError",
    "MalformedResponse",
    "UnexpectedFunctionCode",
    "ModbusExceptionResponse",
    # Logging
    "setup_logging",
    "get_service_logger",
    "configure_service_loggers",
    "resolve_log_settings",
    "log_device_read",
    # Scheduling
    "ScheduledLoop",
]
