"""
Shared contract for the serial tools.

A SerialTool names its device, carries a short tag used in status lines,
hands out the open link, and implements run_mode() for one connection
attempt. Everything about the connection lifecycle lives in
ConnectionSupervisor, which drives a tool purely through this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .bridge import DuplexBridge
from .errors import MissingResourceError
from .implementations import ConsoleLogger, RealClock, RealConsole, RealSerialPort
from .interfaces import (
    ClockInterface,
    ConnectionState,
    ConsoleInterface,
    LoggerInterface,
    SerialPortInterface,
)


class SerialTool(ABC):
    """
    Base class for MiniPush and MiniTerm.

    Dependencies default to the real implementations; tests inject mocks.
    """

    name_short = "??"
    banner = ""
    reconnect_message = "Connection Error: Reinsert the USB serial again"

    def __init__(
        self,
        device: str,
        serial_port: Optional[SerialPortInterface] = None,
        console: Optional[ConsoleInterface] = None,
        logger: Optional[LoggerInterface] = None,
        clock: Optional[ClockInterface] = None,
    ):
        self._device = device
        self._serial = serial_port or RealSerialPort()
        self._console = console or RealConsole()
        self._logger = logger or ConsoleLogger(prefix=self.name_short)
        self._clock = clock or RealClock()
        self.state = ConnectionState.DISCONNECTED

    @property
    def device(self) -> str:
        return self._device

    @property
    def serial_port(self) -> SerialPortInterface:
        """The transport, open or not."""
        return self._serial

    @property
    def link(self) -> SerialPortInterface:
        """The open serial link. Raises MissingResourceError when closed."""
        if not self._serial.is_open():
            raise MissingResourceError("serial")
        return self._serial

    @property
    def console(self) -> ConsoleInterface:
        return self._console

    @property
    def logger(self) -> LoggerInterface:
        return self._logger

    @property
    def clock(self) -> ClockInterface:
        return self._clock

    def terminal(self) -> None:
        """Bridge the console to the link until Ctrl-C or disconnect."""
        self.state = ConnectionState.BRIDGE_ACTIVE
        DuplexBridge(self.link, self._console).run()

    @abstractmethod
    def run_mode(self) -> None:
        """Run one full attempt over an already-open link."""
