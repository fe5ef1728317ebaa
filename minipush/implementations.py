"""
Real implementations of interfaces for production use.

These classes wrap actual system resources (serial ports, the terminal,
the clock) and implement the abstract interfaces.
"""

from typing import Iterator, Optional, List
from contextlib import contextmanager
import errno
import logging
import os
import select
import sys
import time

import serial
import serial.tools.list_ports

from .errors import (
    DeviceConnectionError,
    MissingResourceError,
    SerialIOError,
    TransportOpenError,
)
from .interfaces import (
    SerialPortInterface, ConsoleInterface, ClockInterface, LoggerInterface,
    PortInfo, READ_TIMEOUT
)

IS_POSIX = os.name == "posix"

if IS_POSIX:
    import termios
    import tty
else:
    import msvcrt

logger = logging.getLogger(__name__)

# errno values seen when a USB serial adapter is pulled mid-read.
# 1167 is ERROR_DEVICE_NOT_CONNECTED on Windows.
DISCONNECT_ERRNOS = {errno.EINVAL, errno.EIO, errno.ENXIO, errno.ENODEV}
WINDOWS_DEVICE_NOT_CONNECTED = 1167

WINDOWS_KEY_POLL = 0.005


def classify_os_error(e: OSError):
    """Map a transport OSError onto DeviceConnectionError or SerialIOError."""
    if e.errno in DISCONNECT_ERRNOS or getattr(e, "winerror", None) == WINDOWS_DEVICE_NOT_CONNECTED:
        return DeviceConnectionError(str(e))
    return SerialIOError(str(e))


class RealSerialPort(SerialPortInterface):
    """
    Real serial port implementation using pyserial.
    """

    def __init__(self):
        self._serial: Optional[serial.Serial] = None

    def _require(self) -> serial.Serial:
        if self._serial is None:
            raise MissingResourceError("serial")
        return self._serial

    def open(self, port: str, baud: int, timeout: float = READ_TIMEOUT) -> None:
        kwargs = {}
        if IS_POSIX:
            kwargs["exclusive"] = True
        try:
            self._serial = serial.Serial(port, baud, timeout=timeout, **kwargs)
        except (serial.SerialException, OSError, ValueError) as e:
            self._serial = None
            raise TransportOpenError(f"cannot open {port}: {e}") from e

    def close(self) -> None:
        if self._serial:
            try:
                self._serial.close()
            except (serial.SerialException, OSError) as e:
                logger.debug("ignoring error while closing port: %s", e)
            self._serial = None

    def is_open(self) -> bool:
        if self._serial is None:
            return False
        return self._serial.is_open

    def read(self, max_bytes: int) -> bytes:
        port = self._require()
        if max_bytes <= 0:
            return b""
        try:
            return port.read(max_bytes)
        except serial.SerialTimeoutException:
            return b""
        except serial.SerialException as e:
            # pyserial reports a vanished device as a SerialException
            raise DeviceConnectionError(str(e)) from e
        except OSError as e:
            raise classify_os_error(e) from e

    def write(self, data: bytes) -> int:
        port = self._require()
        try:
            written = port.write(data)
        except (serial.SerialException, OSError) as e:
            raise DeviceConnectionError(f"write failed: {e}") from e
        return written if written is not None else len(data)

    def exists(self, port: str) -> bool:
        if IS_POSIX:
            return os.path.exists(port)
        return any(p.device == port for p in self.list_ports())

    @staticmethod
    def list_ports() -> List[PortInfo]:
        ports = []
        for p in serial.tools.list_ports.comports():
            ports.append(PortInfo(
                device=p.device,
                description=p.description or "",
                hwid=p.hwid or "",
            ))
        return ports


class RealConsole(ConsoleInterface):
    """
    Terminal on stdin/stdout.

    Raw mode uses termios, so it is only available on POSIX. When stdin is
    not a tty (piped input) raw mode is a no-op. On Windows keystrokes are
    polled with msvcrt and raw mode is a no-op as well.
    """

    def __init__(self, stdin=None, stdout=None):
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._saved_attrs = None
        self._eof = False

    def _fd(self) -> int:
        return self._stdin.fileno()

    def read(self, max_bytes: int, timeout: float) -> bytes:
        if not IS_POSIX:
            return self._read_windows(max_bytes, timeout)
        if self._eof:
            time.sleep(timeout)
            return b""
        fd = self._fd()
        ready, _, _ = select.select([fd], [], [], timeout)
        if not ready:
            return b""
        data = os.read(fd, max_bytes)
        if not data:
            self._eof = True
        return data

    def _read_windows(self, max_bytes: int, timeout: float) -> bytes:
        # select() only takes sockets on Windows; poll the console instead.
        end = time.monotonic() + timeout
        data = bytearray()
        while len(data) < max_bytes:
            if msvcrt.kbhit():
                data += msvcrt.getch()
            elif data or time.monotonic() >= end:
                break
            else:
                time.sleep(WINDOWS_KEY_POLL)
        return bytes(data)

    def write(self, text: str) -> None:
        self._stdout.write(text)

    def flush(self) -> None:
        self._stdout.flush()

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        self._enter_raw()
        try:
            yield
        finally:
            self.restore()

    def _enter_raw(self) -> None:
        if not IS_POSIX or not self._stdin.isatty():
            return
        fd = self._fd()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)

    def restore(self) -> None:
        if self._saved_attrs is None:
            return
        termios.tcsetattr(self._fd(), termios.TCSADRAIN, self._saved_attrs)
        self._saved_attrs = None


class RealClock(ClockInterface):
    """
    Real clock implementation using system time.
    """

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class ConsoleLogger(LoggerInterface):
    """
    Prints status lines tagged with the tool's short name, e.g. "[MP] ...".
    """

    def __init__(self, prefix: str = "MP", stream=None):
        self._prefix = prefix
        self._stream = stream if stream is not None else sys.stdout

    def _emit(self, msg: str) -> None:
        print(f"[{self._prefix}] {msg}", file=self._stream, flush=True)

    def info(self, msg: str) -> None:
        self._emit(msg)

    def warning(self, msg: str) -> None:
        self._emit(f"WARN: {msg}")

    def error(self, msg: str) -> None:
        self._emit(f"ERROR: {msg}")
