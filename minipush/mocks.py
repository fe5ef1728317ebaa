"""
Mock implementations for testing.

These classes implement the abstract interfaces with in-memory behavior
suitable for unit testing without hardware.
"""

from typing import Callable, Iterator, Optional, List
from contextlib import contextmanager
from collections import deque
import threading
import time

from .errors import DeviceConnectionError, TransportOpenError
from .interfaces import (
    SerialPortInterface, ConsoleInterface, ClockInterface, LoggerInterface,
    PortInfo, READ_TIMEOUT
)


class MockSerialPort(SerialPortInterface):
    """
    Mock serial port for testing.

    Provides a queue-based simulation of serial communication.
    Test code can inject data with inject_bytes() and read sent data with
    get_sent(). Scripts queued with add_connection() are loaded into the
    receive buffer on each successive open(), so reconnect flows can give
    every connection its own device behavior.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._is_open = False
        self._port = ""
        self._baud = 0
        self._timeout = 0.0
        self._rx_buffer: deque = deque()
        self._tx_buffer: List[bytes] = []
        self._connections: deque = deque()
        self._present = True
        self._presence: deque = deque()
        self._fail_on_open = False
        self._fail_on_write = False
        self._disconnect_when_drained = False
        self.open_count = 0
        self.events: List[tuple] = []

    def open(self, port: str, baud: int, timeout: float = READ_TIMEOUT) -> None:
        if self._fail_on_open:
            raise TransportOpenError(f"cannot open {port}: mock failure")
        self._port = port
        self._baud = baud
        self._timeout = timeout
        self._is_open = True
        self.open_count += 1
        self.events.append(("open",))
        if self._connections:
            chunks, disconnect = self._connections.popleft()
            with self._lock:
                self._rx_buffer.clear()
                self._rx_buffer.extend(chunks)
            self._disconnect_when_drained = disconnect

    def close(self) -> None:
        if self._is_open:
            self.events.append(("close",))
        self._is_open = False

    def is_open(self) -> bool:
        return self._is_open

    def read(self, max_bytes: int) -> bytes:
        if not self._is_open:
            raise DeviceConnectionError("port closed")
        with self._lock:
            if self._rx_buffer:
                chunk = self._rx_buffer.popleft()
                if len(chunk) > max_bytes:
                    self._rx_buffer.appendleft(chunk[max_bytes:])
                    chunk = chunk[:max_bytes]
                self.events.append(("rx", chunk))
                return chunk
        if self._disconnect_when_drained:
            raise DeviceConnectionError("device disconnected")
        # Simulate the transport's short read timeout.
        time.sleep(0.001)
        return b""

    def write(self, data: bytes) -> int:
        if not self._is_open:
            raise DeviceConnectionError("port closed")
        if self._fail_on_write:
            raise DeviceConnectionError("write failed")
        with self._lock:
            self._tx_buffer.append(bytes(data))
        self.events.append(("tx", bytes(data)))
        return len(data)

    def exists(self, port: str) -> bool:
        if self._presence:
            self._present = self._presence.popleft()
        self.events.append(("exists", self._present))
        return self._present

    @staticmethod
    def list_ports() -> List[PortInfo]:
        return []

    # Test helper methods

    @property
    def port(self) -> str:
        return self._port

    @property
    def baud(self) -> int:
        return self._baud

    @property
    def timeout(self) -> float:
        return self._timeout

    def inject_bytes(self, data: bytes) -> None:
        """Inject raw bytes into the receive buffer."""
        with self._lock:
            self._rx_buffer.append(data)

    def add_connection(self, chunks: List[bytes], disconnect: bool = False) -> None:
        """Queue receive data for the next open(); disconnect once drained."""
        self._connections.append((list(chunks), disconnect))

    def get_sent(self) -> List[bytes]:
        """Get all data sent via write() (for testing)."""
        with self._lock:
            return self._tx_buffer.copy()

    def set_presence_sequence(self, states: List[bool]) -> None:
        """Answers for successive exists() calls; the last one sticks."""
        self._presence.extend(states)

    def set_fail_on_open(self, fail: bool) -> None:
        """Make open() fail (for testing error handling)."""
        self._fail_on_open = fail

    def set_fail_on_write(self, fail: bool) -> None:
        self._fail_on_write = fail


class MockConsole(ConsoleInterface):
    """
    Scripted terminal.

    Keystrokes queued with type_bytes() are returned by read(); everything
    written is collected in output.
    """

    def __init__(self):
        self._input: deque = deque()
        self._chunks: List[str] = []
        self._raw = False
        self.raw_entries = 0
        self.restore_calls = 0
        self.flushes = 0

    def read(self, max_bytes: int, timeout: float) -> bytes:
        if self._input:
            item = self._input.popleft()
            if callable(item):
                item = item()
            return item[:max_bytes]
        time.sleep(min(timeout, 0.001))
        return b""

    def write(self, text: str) -> None:
        self._chunks.append(text)

    def flush(self) -> None:
        self.flushes += 1

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        self._raw = True
        self.raw_entries += 1
        try:
            yield
        finally:
            self.restore()

    def restore(self) -> None:
        self.restore_calls += 1
        self._raw = False

    # Test helper methods

    @property
    def is_raw(self) -> bool:
        return self._raw

    @property
    def output(self) -> str:
        return "".join(self._chunks)

    def type_bytes(self, data: bytes) -> None:
        """Queue keystrokes for read()."""
        self._input.append(data)

    def type_later(self, produce: Callable[[], bytes]) -> None:
        """Queue a callable evaluated when read() reaches it."""
        self._input.append(produce)


class MockClock(ClockInterface):
    """
    Controllable clock for testing.

    sleep() only records the call, so polling loops run instantly.
    """

    def __init__(self):
        self._sleep_calls: List[float] = []

    def sleep(self, seconds: float) -> None:
        self._sleep_calls.append(seconds)

    # Test helper methods

    def get_sleep_calls(self) -> List[float]:
        """Get list of all sleep() calls made."""
        return self._sleep_calls.copy()


class MockLogger(LoggerInterface):
    """
    Logger that captures all messages for testing.
    """

    def __init__(self):
        self._messages: List[tuple] = []

    def info(self, msg: str) -> None:
        self._messages.append(("INFO", msg))

    def warning(self, msg: str) -> None:
        self._messages.append(("WARNING", msg))

    def error(self, msg: str) -> None:
        self._messages.append(("ERROR", msg))

    # Test helper methods

    def get_messages(self, level: Optional[str] = None) -> List[tuple]:
        """Get logged messages, optionally filtered by level."""
        if level:
            return [(l, m) for l, m in self._messages if l == level]
        return self._messages.copy()

    def contains(self, substring: str, level: Optional[str] = None) -> bool:
        """Check if any message contains substring."""
        messages = self.get_messages(level)
        return any(substring in m for _, m in messages)
