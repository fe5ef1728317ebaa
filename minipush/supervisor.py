"""
Connection supervisor.

Owns the serial link for a SerialTool: waits for the device, opens it,
runs the tool's mode, and decides what a failure means. Connection,
protocol and timeout errors close the link and go back to waiting for the
device; anything else is fatal. The console is restored and the link
closed on every way out of run(), including exceptions that escape the
normal classification.
"""

import logging

from .errors import RECOVERABLE_ERRORS
from .interfaces import ConnectionState, READ_TIMEOUT, SERIAL_BAUD, SerialConfig
from .tool import SerialTool

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class ConnectionSupervisor:
    """
    Drives a SerialTool through connect / run / reconnect.

    Usage:
        exit_code = ConnectionSupervisor(MiniTerm("/dev/ttyUSB0")).run()
    """

    def __init__(
        self,
        tool: SerialTool,
        baud: int = SERIAL_BAUD,
        read_timeout: float = READ_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ):
        self._tool = tool
        self._config = SerialConfig(port=tool.device, baud=baud, timeout=read_timeout)
        self._poll_interval = poll_interval
        self._reconnect_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._tool.state

    @property
    def reconnect_count(self) -> int:
        """Number of recoverable failures handled so far."""
        return self._reconnect_count

    def _set_state(self, state: ConnectionState) -> None:
        logger.debug("%s -> %s", self._tool.state.value, state.value)
        self._tool.state = state

    def device_present(self) -> bool:
        return self._tool.serial_port.exists(self._tool.device)

    def wait_for_device(self) -> None:
        """Block, polling once per interval, until the device shows up."""
        self._set_state(ConnectionState.WAITING_FOR_DEVICE)
        if self.device_present():
            return
        self._tool.logger.info(f"Waiting for {self._tool.device}")
        while not self.device_present():
            self._tool.clock.sleep(self._poll_interval)

    def open_link(self) -> None:
        """
        Wait for the device and open it.

        Raises:
            TransportOpenError: the device exists but could not be opened.
        """
        self.wait_for_device()
        self._tool.serial_port.open(self._config.port, self._config.baud, self._config.timeout)
        self._set_state(ConnectionState.CONNECTED)
        self._tool.logger.info("Connected")

    def connection_reset(self) -> None:
        """Drop the link and give the terminal back."""
        self._tool.serial_port.close()
        self._tool.console.restore()
        self._set_state(ConnectionState.DISCONNECTED)

    def handle_reconnect(self, error: Exception) -> None:
        self._reconnect_count += 1
        logger.debug("recoverable failure #%d: %r", self._reconnect_count, error)
        self.connection_reset()
        self._set_state(ConnectionState.RECONNECTING)
        self._tool.logger.warning(self._tool.reconnect_message)

    def handle_unexpected(self, error: Exception) -> None:
        self.connection_reset()
        self._tool.logger.error(f"Unexpected Error: {error!r}")

    def run(self) -> int:
        """
        Run until the tool finishes or fails fatally.

        Returns:
            Exit code: 0 on a clean finish, 1 on a fatal error.
        """
        exit_code = 1
        try:
            while True:
                try:
                    self.open_link()
                    self._tool.run_mode()
                except RECOVERABLE_ERRORS as e:
                    self.handle_reconnect(e)
                    continue
                except Exception as e:
                    logger.debug("fatal failure", exc_info=True)
                    self.handle_unexpected(e)
                    break
                exit_code = 0
                break
        finally:
            self.connection_reset()
            self._set_state(ConnectionState.TERMINATED)
            self._tool.logger.info("Bye")
        return exit_code
