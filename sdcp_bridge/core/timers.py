"""Cancelable one-shot and periodic timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set

from .protocols import Cancellable, Scheduler, TimerCallback

LOGGER = logging.getLogger(__name__)


class TimerHandle:
    """Handle for a scheduled callback.

    Periodic handles re-arm themselves after every firing until cancelled.
    """

    def __init__(
        self,
        scheduler: "AsyncioScheduler",
        callback: TimerCallback,
        *,
        delay: float,
        repeat: bool,
        name: str,
    ) -> None:
        self.name = name
        self._scheduler = scheduler
        self._callback = callback
        self._delay = max(0.0, delay)
        self._repeat = repeat
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    @property
    def active(self) -> bool:
        return not self._cancelled and self._handle is not None

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        if self._cancelled:
            return
        self._handle = self._scheduler.loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        if self._cancelled:
            return
        if self._repeat:
            self._arm()
        self._scheduler.run_callback(self._callback, self.name)


class AsyncioScheduler:
    """Default :class:`Scheduler` backed by ``loop.call_later``."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(
        self, delay: float, callback: TimerCallback, *, name: str = ""
    ) -> TimerHandle:
        handle = TimerHandle(self, callback, delay=delay, repeat=False, name=name)
        handle._arm()
        return handle

    def call_every(
        self, interval: float, callback: TimerCallback, *, name: str = ""
    ) -> TimerHandle:
        handle = TimerHandle(self, callback, delay=interval, repeat=True, name=name)
        handle._arm()
        return handle

    def run_callback(self, callback: TimerCallback, name: str) -> None:
        try:
            result = callback()
        except Exception:
            LOGGER.exception("Timer callback %r failed", name or callback)
            return

        if asyncio.iscoroutine(result):
            task = self.loop.create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Timer task failed: %s", exc, exc_info=exc)


class TimerGroup:
    """Named timers owned by one component.

    Scheduling a name that is already armed replaces the previous timer.
    ``cancel_all`` releases every handle and is safe to call repeatedly.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: Dict[str, Cancellable] = {}

    def call_later(self, name: str, delay: float, callback: TimerCallback) -> Cancellable:
        self.cancel(name)
        handle = self._scheduler.call_later(delay, callback, name=name)
        self._handles[name] = handle
        return handle

    def call_every(self, name: str, interval: float, callback: TimerCallback) -> Cancellable:
        self.cancel(name)
        handle = self._scheduler.call_every(interval, callback, name=name)
        self._handles[name] = handle
        return handle

    def is_active(self, name: str) -> bool:
        handle = self._handles.get(name)
        return handle is not None and handle.active

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for name in list(self._handles):
            self.cancel(name)

    def __len__(self) -> int:
        return sum(1 for handle in self._handles.values() if handle.active)
