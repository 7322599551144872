"""Shared fakes for the check-in agent tests."""

import asyncio
import json

import httpx
import pytest
from PIL import Image

from checkin.exceptions import PersistenceError
from checkin.sync.store import MemoryStore


def blank_frame() -> Image.Image:
    """A small frame with nothing to decode."""
    return Image.new("RGB", (32, 32), color="white")


class FakeDecoder:
    """Returns queued payloads in order, then None."""

    def __init__(self, payloads=()):
        self.payloads = list(payloads)
        self.calls = 0

    def decode(self, frame):
        self.calls += 1
        if self.payloads:
            return self.payloads.pop(0)
        return None


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCollector:
    """httpx handler recording posted scans and replaying scripted responses.

    Items in ``responses`` are httpx.Response objects or exceptions to raise.
    When the script is exhausted, ``default`` is returned.
    """

    def __init__(self, responses=(), default: httpx.Response | None = None):
        self.responses = list(responses)
        self.default = default or httpx.Response(200, json={"message": "Attendance recorded"})
        self.posted: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method != "POST":
            return httpx.Response(200)

        self.posted.append(json.loads(request.content))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        # Fresh copy: a response object is consumed once it has been sent
        return httpx.Response(self.default.status_code, headers=self.default.headers, content=self.default.content)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FailingStore(MemoryStore):
    """Memory store whose writes fail once ``fail_writes`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_writes = False

    def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceError("disk full")
        super().set(key, value)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
