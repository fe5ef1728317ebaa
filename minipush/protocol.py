"""
Image transfer protocol.

Wire format, in order:

1. Device sends three consecutive 0x03 marker bytes when it is ready.
   Anything else it prints before that is boot output and gets echoed.
2. Host sends the image length as a 4-byte little-endian unsigned int.
3. Device answers with the two bytes b"OK".
4. Host pushes the image in chunks of at most 512 bytes, no per-chunk ack.

There is no checksum and no resume; a failed transfer starts over from the
handshake.
"""

from __future__ import annotations

import logging
import os
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from tqdm import tqdm

from .errors import (
    DeviceConnectionError,
    ProtocolError,
    SerialIOError,
    SerialToolError,
)
from .interfaces import ConsoleInterface, Deadline, SerialPortInterface
from .timeout import run_with_timeout

logger = logging.getLogger(__name__)

MARKER_BYTE = 0x03
MARKER_COUNT = 3
HANDSHAKE_TIMEOUT = 10.0
ACK = b"OK"
ACK_TIMEOUT = 10.0
CHUNK_SIZE = 512
HANDSHAKE_READ_SIZE = 4096

# The device keeps a 32-bit byte counter, so lengths wrap at 4 GiB.
_SIZE_FRAME = struct.Struct("<I")
SIZE_LIMIT = 1 << 32


def encode_size(size: int) -> bytes:
    """Encode an image length as the 4-byte size frame (truncates >= 4 GiB)."""
    return _SIZE_FRAME.pack(size % SIZE_LIMIT)


def decode_size(frame: bytes) -> int:
    return _SIZE_FRAME.unpack(frame)[0]


@dataclass
class TransferSession:
    """An open image file and the length captured when it was opened."""
    path: str
    stream: BinaryIO
    length: int

    @classmethod
    def open(cls, path: str) -> "TransferSession":
        try:
            stream = open(path, "rb")
        except OSError as e:
            raise SerialIOError(f"cannot open image {path}: {e}") from e
        length = os.fstat(stream.fileno()).st_size
        return cls(path=path, stream=stream, length=length)

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "TransferSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass
class ProgressCounter:
    """
    Bytes pushed so far. Only ever grows; ends equal to total.

    Rendering is delegated to an optional tqdm bar.
    """
    total: int
    value: int = 0
    bar: Optional[tqdm] = field(default=None, repr=False)

    def add(self, count: int) -> int:
        if count < 0:
            raise ValueError("progress cannot go backwards")
        self.value += count
        if self.bar is not None:
            self.bar.update(count)
        return self.value

    @property
    def done(self) -> bool:
        return self.value >= self.total

    def finish(self) -> None:
        if self.bar is not None:
            self.bar.close()


def create_progress(name_short: str, total: int, show: bool = True) -> ProgressCounter:
    bar = None
    if show:
        bar = tqdm(
            total=total,
            unit="B",
            unit_scale=True,
            desc=f"[{name_short}] Pushing",
            ncols=92,
        )
    return ProgressCounter(total=total, bar=bar)


def wait_for_request(
    link: SerialPortInterface,
    console: ConsoleInterface,
    timeout: Optional[float] = None,
) -> None:
    """
    Wait until the device signals it is ready for an image.

    Non-marker bytes reset the marker run and are echoed to the console
    unchanged, since they are the device's own boot output.

    Raises:
        DeviceConnectionError: a read failed.
        TransferTimeoutError: three markers in a row never arrived.
    """

    def scan(deadline: Deadline) -> bool:
        count = 0
        while deadline.is_live():
            try:
                received = link.read(HANDSHAKE_READ_SIZE)
            except SerialToolError as e:
                raise DeviceConnectionError(f"read failed during handshake: {e}") from e
            for byte in received:
                if byte == MARKER_BYTE:
                    count += 1
                    if count == MARKER_COUNT:
                        return True
                else:
                    count = 0
                    console.write(chr(byte))
            if received:
                console.flush()
        return False

    run_with_timeout(scan, HANDSHAKE_TIMEOUT if timeout is None else timeout)
    logger.debug("handshake complete")


def send_size(link: SerialPortInterface, size: int, timeout: Optional[float] = None) -> None:
    """
    Send the size frame and require the b"OK" ack.

    Raises:
        DeviceConnectionError: the size frame could not be written.
        ProtocolError: the ack was wrong, short, or its read failed.
    """
    frame = encode_size(size)
    logger.debug("sending size frame %s for %d bytes", frame.hex(), size)
    link.write(frame)

    if timeout is None:
        timeout = ACK_TIMEOUT
    try:
        received = run_with_timeout(lambda deadline: link.read_exact(len(ACK), deadline), timeout)
    except SerialToolError as e:
        raise ProtocolError(f"no ack from device: {e}") from e
    if received != ACK:
        raise ProtocolError(f"expected ack {ACK!r}, got {received!r}")


def send_image(
    link: SerialPortInterface,
    session: TransferSession,
    progress: ProgressCounter,
) -> int:
    """
    Push the image in CHUNK_SIZE pieces until progress reaches its length.

    Returns:
        The final progress value, equal to session.length.

    Raises:
        DeviceConnectionError: a chunk write failed.
        SerialIOError: the image was shorter than its captured length.
    """
    try:
        while progress.value < session.length:
            try:
                chunk = session.stream.read(min(CHUNK_SIZE, session.length - progress.value))
            except OSError as e:
                raise SerialIOError(f"cannot read image {session.path}: {e}") from e
            if not chunk:
                raise SerialIOError(
                    f"image {session.path} ended at {progress.value} of {session.length} bytes"
                )
            link.write(chunk)
            progress.add(len(chunk))
    finally:
        progress.finish()
    return progress.value
