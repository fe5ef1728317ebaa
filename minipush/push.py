"""
MiniPush: load an image over serial, then drop into the terminal.
"""

from __future__ import annotations

import logging

from .interfaces import ConnectionState
from .protocol import (
    TransferSession,
    create_progress,
    send_image,
    send_size,
    wait_for_request,
)
from .tool import SerialTool

logger = logging.getLogger(__name__)


class MiniPush(SerialTool):
    """Loader mode: handshake, size, chunked transfer, terminal."""

    name_short = "MP"
    banner = "Minipush 1.0"
    reconnect_message = (
        "Connection or protocol Error: "
        "Remove power and USB serial. Reinsert serial first, then power"
    )

    def __init__(self, device: str, image_path: str, show_progress: bool = True, **kwargs):
        super().__init__(device, **kwargs)
        self._image_path = image_path
        self._show_progress = show_progress
        self.last_progress = None

    @property
    def image_path(self) -> str:
        return self._image_path

    def wait_for_binary_request(self) -> None:
        self.state = ConnectionState.HANDSHAKING
        self._logger.info("Please power the target now")
        wait_for_request(self.link, self._console)

    def send_size(self, size: int) -> None:
        self.state = ConnectionState.SIZE_NEGOTIATION
        send_size(self.link, size)

    def send_binary(self, session: TransferSession) -> int:
        self.state = ConnectionState.TRANSFERRING
        progress = create_progress(self.name_short, session.length, show=self._show_progress)
        self.last_progress = progress
        sent = send_image(self.link, session, progress)
        self._logger.info("send finish!")
        return sent

    def run_mode(self) -> None:
        self.wait_for_binary_request()
        with TransferSession.open(self._image_path) as session:
            logger.debug("pushing %s (%d bytes)", session.path, session.length)
            self.send_size(session.length)
            self.send_binary(session)
        self.terminal()
