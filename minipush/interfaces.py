"""
Interfaces for minipush.

Abstract base classes for the pieces that touch the outside world: the
serial transport, the local console, the clock and the status logger.
This enables dependency injection and mock-based testing without hardware.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# Fixed link parameters shared by both tools.
SERIAL_BAUD = 921_600
READ_TIMEOUT = 0.001


class ConnectionState(Enum):
    """Lifecycle of one serial connection, as driven by the supervisor."""
    DISCONNECTED = "disconnected"
    WAITING_FOR_DEVICE = "waiting_for_device"
    CONNECTED = "connected"
    HANDSHAKING = "handshaking"
    SIZE_NEGOTIATION = "size_negotiation"
    TRANSFERRING = "transferring"
    BRIDGE_ACTIVE = "bridge_active"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


@dataclass
class PortInfo:
    """Information about a serial port."""
    device: str
    description: str
    hwid: str


@dataclass
class SerialConfig:
    """Serial port configuration."""
    port: str
    baud: int = SERIAL_BAUD
    timeout: float = READ_TIMEOUT


class Deadline(ABC):
    """Cooperative cancellation flag handed to bounded operations."""

    @abstractmethod
    def is_live(self) -> bool:
        """True until the time window has elapsed."""
        pass


class SerialPortInterface(ABC):
    """
    Abstract interface for serial port operations.

    Implementations:
    - RealSerialPort: Wraps pyserial for actual hardware
    - MockSerialPort: For unit testing without hardware

    Reads that time out return b"" rather than raising. A vanished device
    raises DeviceConnectionError, other transport failures SerialIOError.
    """

    @abstractmethod
    def open(self, port: str, baud: int, timeout: float = READ_TIMEOUT) -> None:
        """Open serial port. Raises TransportOpenError on failure."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close serial port. Safe to call when already closed."""
        pass

    @abstractmethod
    def is_open(self) -> bool:
        """Check if port is currently open."""
        pass

    @abstractmethod
    def read(self, max_bytes: int) -> bytes:
        """Read up to max_bytes. Returns b'' when the read timed out."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write all of data. Raises DeviceConnectionError on failure."""
        pass

    @abstractmethod
    def exists(self, port: str) -> bool:
        """Check whether the device is currently present."""
        pass

    @staticmethod
    @abstractmethod
    def list_ports() -> List[PortInfo]:
        """List available serial ports."""
        pass

    def read_exact(self, size: int, deadline: Optional[Deadline] = None) -> bytes:
        """
        Read until size bytes arrived or the deadline went stale.

        Returns whatever was collected, which is shorter than size only
        when the deadline ran out.
        """
        buf = bytearray()
        while len(buf) < size:
            if deadline is not None and not deadline.is_live():
                break
            buf += self.read(size - len(buf))
        return bytes(buf)


class ConsoleInterface(ABC):
    """
    Abstract interface for the local terminal.

    Implementations:
    - RealConsole: stdin/stdout with termios raw mode
    - MockConsole: scripted input, captured output
    """

    @abstractmethod
    def read(self, max_bytes: int, timeout: float) -> bytes:
        """Read keystrokes, waiting at most timeout seconds. b'' if none."""
        pass

    @abstractmethod
    def write(self, text: str) -> None:
        """Write text to the terminal."""
        pass

    @abstractmethod
    def flush(self) -> None:
        """Flush pending output."""
        pass

    @abstractmethod
    def raw_mode(self) -> AbstractContextManager:
        """Context manager holding the terminal in raw mode."""
        pass

    @abstractmethod
    def restore(self) -> None:
        """Leave raw mode if it is active. Idempotent."""
        pass


class ClockInterface(ABC):
    """
    Abstract interface for time operations.

    Enables deterministic testing of device polling.
    """

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Sleep for specified duration."""
        pass


class LoggerInterface(ABC):
    """
    Abstract interface for user-facing status lines.

    Separates tool logic from output formatting.
    """

    @abstractmethod
    def info(self, msg: str) -> None:
        """Log info message."""
        pass

    @abstractmethod
    def warning(self, msg: str) -> None:
        """Log warning message."""
        pass

    @abstractmethod
    def error(self, msg: str) -> None:
        """Log error message."""
        pass
