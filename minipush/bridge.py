"""
Duplex terminal bridge.

Pumps bytes between the local console and the serial link until one side
stops it. Device output is drained by a background thread; keystrokes are
forwarded from the calling thread. Both loops watch a shared BridgeFlag and
stop at their next iteration once it leaves RUNNING. A loop blocked in a
read is not interrupted; it only sees the flag after the read returns.
"""

from __future__ import annotations

import codecs
import logging
import threading
from enum import Enum
from typing import Optional

from .errors import DeviceConnectionError, SerialToolError
from .interfaces import ConsoleInterface, SerialPortInterface

logger = logging.getLogger(__name__)

INTERRUPT_BYTE = b"\x03"
BRIDGE_BUFFER_SIZE = 256
CONSOLE_POLL = 0.05
READER_JOIN_TIMEOUT = 0.5


class BridgeState(Enum):
    RUNNING = 0
    CONNECTION_FAILED = 1
    USER_INTERRUPTED = 2


class BridgeFlag:
    """
    Tri-state stop flag shared by both bridge directions.

    Write-once: the first transition away from RUNNING wins and later
    attempts are ignored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = BridgeState.RUNNING

    @property
    def state(self) -> BridgeState:
        return self._state

    def is_running(self) -> bool:
        return self._state is BridgeState.RUNNING

    def stop(self, state: BridgeState) -> bool:
        """Move away from RUNNING. Returns False if already stopped."""
        with self._lock:
            if self._state is not BridgeState.RUNNING:
                return False
            self._state = state
            return True


def to_console_text(text: str) -> str:
    """Turn bare line feeds into CR LF for a terminal in raw mode."""
    return text.replace("\n", "\r\n")


class DuplexBridge:
    """
    Interactive console wired to an open serial link.

    Usage:
        DuplexBridge(link, console).run()

    run() returns normally when the user pressed Ctrl-C and raises
    DeviceConnectionError when the device side failed.
    """

    def __init__(
        self,
        link: SerialPortInterface,
        console: ConsoleInterface,
        join_timeout: Optional[float] = READER_JOIN_TIMEOUT,
    ):
        self._link = link
        self._console = console
        self._join_timeout = join_timeout
        self.flag = BridgeFlag()
        self._reader: Optional[threading.Thread] = None

    def run(self) -> None:
        with self._console.raw_mode():
            self._reader = threading.Thread(
                target=self._device_to_console, name="bridge-reader", daemon=True
            )
            self._reader.start()
            try:
                self._console_to_device()
            finally:
                # no-op unless the loop died on a write failure
                self.flag.stop(BridgeState.CONNECTION_FAILED)
                self._reader.join(self._join_timeout)
                if self._reader.is_alive():
                    logger.debug("bridge reader still blocked after %.2fs", self._join_timeout)

        logger.debug("bridge stopped: %s", self.flag.state.name)
        if self.flag.state is BridgeState.CONNECTION_FAILED:
            raise DeviceConnectionError("serial link lost during terminal session")

    def _device_to_console(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while self.flag.is_running():
            try:
                data = self._link.read(BRIDGE_BUFFER_SIZE)
            except SerialToolError as e:
                # only a live bridge reports read failures
                if self.flag.stop(BridgeState.CONNECTION_FAILED):
                    self._console.write(f"\r\nread_serial error {e!r}")
                    self._console.flush()
                break
            if not data:
                continue
            text = decoder.decode(data)
            if text:
                self._console.write(to_console_text(text))
                self._console.flush()

    def _console_to_device(self) -> None:
        while self.flag.is_running():
            data = self._console.read(BRIDGE_BUFFER_SIZE, CONSOLE_POLL)
            if not data:
                continue
            if INTERRUPT_BYTE in data:
                self.flag.stop(BridgeState.USER_INTERRUPTED)
            try:
                self._link.write(data)
            except SerialToolError as e:
                raise DeviceConnectionError(f"write to device failed: {e}") from e
