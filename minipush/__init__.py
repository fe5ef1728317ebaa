"""
minipush - serial image loader and terminal

Pushes a binary image to an embedded target over a serial link, then
bridges the link to an interactive console, surviving device disconnects.
"""

__version__ = "1.0.0"

from .errors import (
    SerialToolError,
    DeviceConnectionError,
    ProtocolError,
    TransferTimeoutError,
    TransportOpenError,
    MissingResourceError,
    SerialIOError,
    RECOVERABLE_ERRORS,
)
from .interfaces import (
    ConnectionState,
    PortInfo,
    SerialConfig,
    SerialPortInterface,
    ConsoleInterface,
    ClockInterface,
    LoggerInterface,
    SERIAL_BAUD,
)
from .timeout import run_with_timeout
from .protocol import TransferSession, ProgressCounter, encode_size, decode_size
from .bridge import BridgeState, DuplexBridge
from .tool import SerialTool
from .push import MiniPush
from .term import MiniTerm
from .supervisor import ConnectionSupervisor

__all__ = [
    "SerialToolError",
    "DeviceConnectionError",
    "ProtocolError",
    "TransferTimeoutError",
    "TransportOpenError",
    "MissingResourceError",
    "SerialIOError",
    "RECOVERABLE_ERRORS",
    "ConnectionState",
    "PortInfo",
    "SerialConfig",
    "SerialPortInterface",
    "ConsoleInterface",
    "ClockInterface",
    "LoggerInterface",
    "SERIAL_BAUD",
    "run_with_timeout",
    "TransferSession",
    "ProgressCounter",
    "encode_size",
    "decode_size",
    "BridgeState",
    "DuplexBridge",
    "SerialTool",
    "MiniPush",
    "MiniTerm",
    "ConnectionSupervisor",
]
