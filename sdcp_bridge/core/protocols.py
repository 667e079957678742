"""Protocol definitions for transports, state stores and schedulers."""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol


TimerCallback = Callable[[], Awaitable[None] | None]


class Transport(Protocol):
    """Message-oriented socket carrying SDCP text frames."""

    @property
    def closed(self) -> bool:
        ...

    async def open(self, url: str) -> None:
        """Open the connection; raises on refusal or handshake failure."""
        ...

    async def send(self, text: str) -> None:
        """Send one text frame."""
        ...

    async def ping(self) -> None:
        """Send a transport-level keepalive."""
        ...

    def messages(self) -> AsyncIterator[str]:
        """Yield inbound text frames until the peer closes.

        Raises on transport errors.
        """
        ...

    async def close(self) -> None:
        ...


class StateStore(Protocol):
    """Sink for published state and source of the last written values."""

    def publish(self, path: str, value: Any, *, ack: bool = True) -> None:
        ...

    def read_last(self, path: str) -> Optional[Any]:
        ...

    def add_listener(self, listener: Callable[[str, Any, bool], None]) -> None:
        """Receive ``(path, value, ack)`` for writes; ``ack=False`` marks external writes."""
        ...


class Cancellable(Protocol):
    @property
    def active(self) -> bool:
        ...

    def cancel(self) -> None:
        """Cancel the timer. Calling it again is a no-op."""
        ...


class Scheduler(Protocol):
    """Timer factory bound to the running event loop."""

    def call_later(
        self, delay: float, callback: TimerCallback, *, name: str = ""
    ) -> Cancellable:
        ...

    def call_every(
        self, interval: float, callback: TimerCallback, *, name: str = ""
    ) -> Cancellable:
        ...
