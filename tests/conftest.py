import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from sdcp_bridge.store import MemoryStateStore

_CLOSE = object()


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], Any], repeat: bool, name: str):
        self.delay = delay
        self.callback = callback
        self.repeat = repeat
        self.name = name
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class FakeScheduler:
    """Records timers instead of arming them; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def call_later(self, delay, callback, *, name=""):
        timer = FakeTimer(delay, callback, False, name)
        self.timers.append(timer)
        return timer

    def call_every(self, interval, callback, *, name=""):
        timer = FakeTimer(interval, callback, True, name)
        self.timers.append(timer)
        return timer

    def active(self, name: str) -> List[FakeTimer]:
        return [timer for timer in self.timers if timer.name == name and timer.active]

    async def fire(self, name: str) -> int:
        fired = 0
        for timer in self.active(name):
            if not timer.repeat:
                timer._active = False
            result = timer.callback()
            if asyncio.iscoroutine(result):
                await result
            fired += 1
        return fired


class FakeTransport:
    """In-memory transport; tests push inbound frames with ``feed``."""

    def __init__(self, *, fail_open: Optional[Exception] = None) -> None:
        self.fail_open = fail_open
        self.url: Optional[str] = None
        self.sent: List[str] = []
        self.pings = 0
        self.close_calls = 0
        self._closed = True
        self._queue: asyncio.Queue = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sent_frames(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]

    @property
    def sent_cmds(self) -> List[int]:
        return [frame["Data"]["Cmd"] for frame in self.sent_frames]

    async def open(self, url: str) -> None:
        if self.fail_open is not None:
            raise self.fail_open
        self.url = url
        self._closed = False

    async def send(self, text: str) -> None:
        if self._closed:
            raise RuntimeError("closed")
        self.sent.append(text)

    async def ping(self) -> None:
        self.pings += 1

    async def messages(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        self._closed = True

    def feed(self, payload: Any) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._queue.put_nowait(text)

    def drop(self) -> None:
        self._queue.put_nowait(_CLOSE)

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)


class FakeTransportFactory:
    def __init__(self) -> None:
        self.transports: List[FakeTransport] = []
        self.fail_next: List[Exception] = []

    def __call__(self) -> FakeTransport:
        fail = self.fail_next.pop(0) if self.fail_next else None
        transport = FakeTransport(fail_open=fail)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


async def _settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def store() -> MemoryStateStore:
    return MemoryStateStore()


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


def status_frame(**fields: Any) -> dict:
    """Build a status push; ``print_status`` / ``hotbed`` are shortcuts."""

    status: dict = {}
    if "hotbed" in fields:
        status["TempOfHotbed"] = fields.pop("hotbed")
    if "print_status" in fields:
        status["PrintInfo"] = {"Status": fields.pop("print_status"), "Filename": "model.ctb"}
    status.update(fields)
    return {"Status": status, "MainboardID": "abc", "Topic": "sdcp/status/abc"}


@pytest.fixture
def make_status():
    return status_frame
