"""Shared pytest fixtures for minipush tests."""

from __future__ import annotations

import pytest

from minipush.mocks import MockClock, MockConsole, MockLogger, MockSerialPort

DEVICE = "/dev/ttyUSB0"


@pytest.fixture
def port():
    return MockSerialPort()


@pytest.fixture
def open_port(port):
    port.open(DEVICE, 921_600)
    return port


@pytest.fixture
def console():
    return MockConsole()


@pytest.fixture
def logger():
    return MockLogger()


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def make_image(tmp_path):
    """Write a deterministic image of the given size and return its path."""

    def _make(size: int, name: str = "kernel8.img") -> str:
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return str(path)

    return _make
