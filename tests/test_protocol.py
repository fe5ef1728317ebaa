"""Tests for minipush/protocol.py — handshake, size frame and chunked push."""

from __future__ import annotations

import io
import struct
from unittest.mock import MagicMock

import pytest
from tqdm import tqdm

from minipush.errors import (
    DeviceConnectionError,
    ProtocolError,
    SerialIOError,
    TransferTimeoutError,
)
from minipush.protocol import (
    ACK,
    CHUNK_SIZE,
    ProgressCounter,
    TransferSession,
    create_progress,
    decode_size,
    encode_size,
    send_image,
    send_size,
    wait_for_request,
)


class TestSizeFrame:
    @pytest.mark.parametrize("size", [0, 1, 512, 1024, 0x12345678, 2**32 - 1])
    def test_round_trip(self, size):
        assert decode_size(encode_size(size)) == size

    def test_little_endian(self):
        assert encode_size(0x01020304) == b"\x04\x03\x02\x01"

    def test_four_bytes(self):
        assert len(encode_size(6 * 1024)) == 4

    def test_truncates_at_4gib(self):
        """The device counter is 32 bits wide; larger sizes wrap."""
        assert encode_size(2**32) == b"\x00\x00\x00\x00"
        assert decode_size(encode_size(2**32 + 5)) == 5


class TestProgressCounter:
    def test_add_accumulates(self):
        progress = ProgressCounter(total=10)
        assert progress.add(4) == 4
        assert progress.add(6) == 10
        assert progress.done

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            ProgressCounter(total=10).add(-1)

    def test_create_without_bar(self):
        progress = create_progress("MP", 100, show=False)
        assert progress.bar is None
        assert progress.total == 100


class TestTransferSession:
    def test_captures_length(self, make_image):
        with TransferSession.open(make_image(1500)) as session:
            assert session.length == 1500

    def test_closes_stream(self, make_image):
        with TransferSession.open(make_image(10)) as session:
            pass
        assert session.stream.closed

    def test_missing_file(self, tmp_path):
        with pytest.raises(SerialIOError):
            TransferSession.open(str(tmp_path / "nope.img"))


class TestHandshake:
    def test_three_markers(self, open_port, console):
        open_port.inject_bytes(b"\x03\x03\x03")
        wait_for_request(open_port, console, timeout=2.0)
        assert console.output == ""

    def test_markers_split_across_reads(self, open_port, console):
        open_port.inject_bytes(b"\x03")
        open_port.inject_bytes(b"\x03")
        open_port.inject_bytes(b"\x03")
        wait_for_request(open_port, console, timeout=2.0)

    def test_boot_output_echoed_in_order(self, open_port, console):
        open_port.inject_bytes(b"U-Boot\r\n")
        open_port.inject_bytes(b"ready")
        open_port.inject_bytes(b"\x03\x03\x03")
        wait_for_request(open_port, console, timeout=2.0)
        assert console.output == "U-Boot\r\nready"

    def test_non_marker_resets_count(self, open_port, console):
        """03 03 x 03 is not a handshake; the run has to restart."""
        open_port.inject_bytes(b"\x03\x03A\x03")
        with pytest.raises(TransferTimeoutError):
            wait_for_request(open_port, console, timeout=0.2)
        assert console.output == "A"

    def test_reset_then_complete(self, open_port, console):
        open_port.inject_bytes(b"\x03\x03x\x03\x03\x03")
        wait_for_request(open_port, console, timeout=2.0)
        assert console.output == "x"

    def test_bytes_after_handshake_left_unread(self, open_port, console):
        open_port.inject_bytes(b"\x03\x03\x03")
        open_port.inject_bytes(b"OK")
        wait_for_request(open_port, console, timeout=2.0)
        assert open_port.read(2) == b"OK"

    def test_two_markers_times_out(self, open_port, console):
        open_port.inject_bytes(b"\x03\x03")
        with pytest.raises(TransferTimeoutError):
            wait_for_request(open_port, console, timeout=0.2)

    def test_read_failure_is_connection_error(self, port, console):
        port.add_connection([b"boot"], disconnect=True)
        port.open("/dev/ttyUSB0", 921_600)
        with pytest.raises(DeviceConnectionError):
            wait_for_request(port, console, timeout=2.0)


class TestSendSize:
    def test_writes_frame_then_accepts_ok(self, open_port):
        open_port.inject_bytes(ACK)
        send_size(open_port, 1024, timeout=2.0)
        assert open_port.get_sent() == [struct.pack("<I", 1024)]

    def test_ok_split_across_reads(self, open_port):
        open_port.inject_bytes(b"O")
        open_port.inject_bytes(b"K")
        send_size(open_port, 1, timeout=2.0)

    @pytest.mark.parametrize("reply", [b"NO", b"ok", b"KO", b"\x00\x00"])
    def test_rejects_wrong_ack(self, open_port, reply):
        open_port.inject_bytes(reply)
        with pytest.raises(ProtocolError):
            send_size(open_port, 1, timeout=2.0)

    def test_rejects_short_ack(self, open_port):
        """Only one byte ever arrives."""
        open_port.inject_bytes(b"O")
        with pytest.raises(ProtocolError):
            send_size(open_port, 1, timeout=0.2)

    def test_read_failure_is_protocol_error(self, port):
        port.add_connection([b"O"], disconnect=True)
        port.open("/dev/ttyUSB0", 921_600)
        with pytest.raises(ProtocolError):
            send_size(port, 1, timeout=2.0)

    def test_write_failure_is_connection_error(self, open_port):
        open_port.set_fail_on_write(True)
        with pytest.raises(DeviceConnectionError):
            send_size(open_port, 1, timeout=2.0)


class TestSendImage:
    @pytest.mark.parametrize("size", [0, 1, 511, 512, 513, 1024, 1500, 4096])
    def test_chunking(self, open_port, make_image, size):
        with TransferSession.open(make_image(size)) as session:
            progress = ProgressCounter(total=session.length)
            sent = send_image(open_port, session, progress)

        chunks = open_port.get_sent()
        assert sent == size
        assert progress.value == size
        assert len(chunks) == -(-size // CHUNK_SIZE)
        assert sum(len(c) for c in chunks) == size
        assert all(len(c) == CHUNK_SIZE for c in chunks[:-1])
        if size:
            assert len(chunks[-1]) == (size % CHUNK_SIZE or CHUNK_SIZE)

    def test_contents_in_order(self, open_port, make_image):
        path = make_image(1300)
        with TransferSession.open(path) as session:
            send_image(open_port, session, ProgressCounter(total=session.length))
        with open(path, "rb") as f:
            assert b"".join(open_port.get_sent()) == f.read()

    def test_length_not_rechecked(self, open_port):
        """Bytes beyond the captured length are never sent."""
        session = TransferSession(path="mem", stream=io.BytesIO(b"x" * 700), length=600)
        send_image(open_port, session, ProgressCounter(total=600))
        assert [len(c) for c in open_port.get_sent()] == [512, 88]

    def test_truncated_source(self, open_port):
        session = TransferSession(path="mem", stream=io.BytesIO(b"x" * 100), length=600)
        with pytest.raises(SerialIOError):
            send_image(open_port, session, ProgressCounter(total=600))

    def test_write_failure_aborts(self, open_port, make_image):
        open_port.set_fail_on_write(True)
        with TransferSession.open(make_image(2048)) as session:
            progress = ProgressCounter(total=session.length)
            with pytest.raises(DeviceConnectionError):
                send_image(open_port, session, progress)
        assert progress.value == 0

    def test_write_failure_closes_progress_bar(self, open_port, make_image):
        bar = MagicMock()
        open_port.set_fail_on_write(True)
        with TransferSession.open(make_image(2048)) as session:
            with pytest.raises(DeviceConnectionError):
                send_image(open_port, session, ProgressCounter(total=session.length, bar=bar))
        bar.close.assert_called_once()

    def test_failed_push_leaves_no_live_tqdm_bar(self, open_port, make_image):
        open_port.set_fail_on_write(True)
        with TransferSession.open(make_image(2048)) as session:
            progress = create_progress("MP", session.length)
            with pytest.raises(DeviceConnectionError):
                send_image(open_port, session, progress)
        assert progress.bar.disable
        assert progress.bar not in getattr(tqdm, "_instances", ())
