"""Pytest configuration and fixtures for httpoison tests.

This file provides:
- ReservedPort / MockServer: the FastAPI mock server run as a subprocess
- Fixtures: recording transports, captured loggers, the session server
- Hooks: unit/integration markers by test location
"""

from __future__ import annotations

import logging
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Generator

import httpx
import pytest

from tests.transport_fixtures import CAPTURED_LOGGER_NAME, RecordingTransport

PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"
MOCK_SERVER_HOST = "127.0.0.1"


class ReservedPort:
    """An ephemeral port held by an open socket until the server needs it."""

    def __init__(self) -> None:
        self._socket: socket.socket | None = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind((MOCK_SERVER_HOST, 0))
        self.number: int = self._socket.getsockname()[1]

    def release(self) -> int:
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        return self.number


def _accepts_connections(port: int, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.create_connection((MOCK_SERVER_HOST, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class MockServer:
    """tests/integration/mock_server.py running in a subprocess.

    Usage:
        with MockServer(ReservedPort()) as server:
            executor.execute(RequestDescription(url=server.url("/echo")))
    """

    def __init__(self, port: ReservedPort) -> None:
        self._port = port
        self.base_url = f"http://{MOCK_SERVER_HOST}:{port.number}"
        self._process: subprocess.Popen | None = None

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def start(self) -> None:
        """Spawn the server and wait until it accepts connections.

        Raises:
            RuntimeError: If the server is not reachable within 10 seconds.
        """
        port = self._port.release()
        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", MOCK_SERVER_HOST,
                "--port", str(port),
            ],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            cwd=PROJECT_ROOT,
        )

        if not _accepts_connections(port):
            self.stop()
            raise RuntimeError(f"mock server did not start on port {port}")

    def stop(self) -> None:
        """Terminate the subprocess, killing it if it ignores SIGTERM."""
        if self._process is None:
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait(timeout=5)
        self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def recorder() -> RecordingTransport:
    """Mock transport answering 200 with an empty body."""
    return RecordingTransport()


@pytest.fixture
def mock_client(recorder: RecordingTransport) -> Generator[httpx.Client, None, None]:
    """httpx.Client wired to the `recorder` fixture."""
    with httpx.Client(transport=recorder.transport) as client:
        yield client


@pytest.fixture
def captured_logger(caplog: pytest.LogCaptureFixture) -> logging.Logger:
    """Logger captured by caplog at DEBUG, for passing to RequestExecutor."""
    caplog.set_level(logging.DEBUG, logger=CAPTURED_LOGGER_NAME)
    return logging.getLogger(CAPTURED_LOGGER_NAME)


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Start the mock HTTP server once per test session.

    Example:
        def test_echo(mock_server):
            url = mock_server.url("/echo")
    """
    with MockServer(ReservedPort()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
