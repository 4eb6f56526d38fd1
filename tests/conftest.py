import threading
import time

import pytest


class CollectingDestination:
    """LineDestination that keeps every line in memory."""

    def __init__(self):
        self._lines: list[str] = []
        self._lock = threading.Lock()

    def write_line(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    @property
    def lines(self) -> list[str]:
        with self._lock:
            return list(self._lines)

    def wait_for(self, count: int, timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if len(self.lines) >= count:
                return True
            time.sleep(0.01)
        return len(self.lines) >= count


class FakeWriter:
    """In-memory ResponseWriter."""

    def __init__(self):
        self.headers: dict = {}
        self.status = None
        self.chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self.chunks.append(data)
        return len(data)

    def set_status(self, code: int) -> None:
        self.status = code

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)


@pytest.fixture
def collector():
    return CollectingDestination()


@pytest.fixture
def make_collector():
    return CollectingDestination


@pytest.fixture
def writer():
    return FakeWriter()
