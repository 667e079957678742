"""Printer session lifecycle: connect, validate, poll, reconnect.

The session owns the transport exclusively. A fresh transport is created for
every connection attempt and dropped on every close or error; frames are
processed in arrival order by a single receive task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .alerts import AlertEngine, AlertKind
from .config import AlertConfig, PrinterConfig
from .core import AsyncioScheduler, Scheduler, StateStore, TimerGroup, Transport
from .protocol import (
    CommandCode,
    CommandResponseFrame,
    DecodeError,
    StatusFrame,
    decode,
    encode,
    new_request_id,
)
from .status import StatusSnapshot, normalize, snapshot_to_state

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]
StateListener = Callable[["SessionState"], None]
StatusListener = Callable[[StatusSnapshot], None]

_HEARTBEAT = "heartbeat"
_POLL = "poll"
_VALIDATION = "validation"
_RECONNECT = "reconnect"


class SessionState(str, Enum):
    """Connection state of the printer session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    VALIDATING = "validating"
    CONNECTED = "connected"
    CLOSING = "closing"


@dataclass(slots=True, frozen=True)
class PendingCommand:
    request_id: str
    cmd: int
    verb: str
    issued_at: float


class Session:
    """Owns the printer websocket and everything that happens on it."""

    def __init__(
        self,
        config: PrinterConfig,
        store: StateStore,
        *,
        transport_factory: Optional[TransportFactory] = None,
        scheduler: Optional[Scheduler] = None,
        alerts: Optional[AlertEngine] = None,
        alert_config: Optional[AlertConfig] = None,
    ) -> None:
        if transport_factory is None:
            from .adapters.websocket import WebSocketTransport

            transport_factory = WebSocketTransport

        self.config = config
        self._store = store
        self._transport_factory = transport_factory
        self._scheduler = scheduler or AsyncioScheduler()
        self.alerts = alerts or AlertEngine(store, self._scheduler, alert_config)

        self._timers = TimerGroup(self._scheduler)
        self._state = SessionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._pending: Dict[str, PendingCommand] = {}
        self._last_snapshot: Optional[StatusSnapshot] = None
        self._state_listeners: List[StateListener] = []
        self._status_listeners: List[StatusListener] = []
        self._stopping = False
        self.last_frame_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def last_snapshot(self) -> Optional[StatusSnapshot]:
        return self._last_snapshot

    @property
    def pending_commands(self) -> Mapping[str, PendingCommand]:
        return dict(self._pending)

    @property
    def reconnect_pending(self) -> bool:
        return self._timers.is_active(_RECONNECT)

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    async def start(self) -> None:
        """Open the first connection; failures fall through to the reconnect policy."""

        self._stopping = False
        await self.connect()

    async def connect(self) -> None:
        if self._stopping or self._state != SessionState.DISCONNECTED:
            return

        url = self.config.url
        self._set_state(SessionState.CONNECTING)
        transport = self._transport_factory()
        self._transport = transport

        LOGGER.info("Connecting to printer at %s", url)
        try:
            await transport.open(url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Failed to connect to printer at %s: %s", url, exc)
            await self._handle_lost(transport, f"connect failed: {exc}")
            return

        if self._stopping or self._transport is not transport:
            with contextlib.suppress(Exception):
                await transport.close()
            return

        LOGGER.info("Connected to printer at %s", url)
        self._on_open()
        self._receive_task = asyncio.create_task(self._receive_loop(transport))
        await self.send_command(CommandCode.GET_STATUS, verb="validate")

    def schedule_reconnect(self) -> bool:
        """Arm the reconnect timer unless one is already pending."""

        if self._stopping or self._timers.is_active(_RECONNECT):
            return False

        delay = self.config.reconnect_interval_ms / 1000.0
        LOGGER.info("Reconnecting to printer in %.1fs", delay)
        self._timers.call_later(_RECONNECT, delay, self._reconnect)
        return True

    async def send_command(
        self,
        cmd: int,
        data: Optional[Mapping[str, Any]] = None,
        *,
        verb: str = "",
    ) -> Optional[str]:
        """Encode and send a command, returning its request id.

        Returns ``None`` when there is no open transport or the send fails.
        """

        transport = self._transport
        if transport is None or self._state not in (
            SessionState.VALIDATING,
            SessionState.CONNECTED,
        ):
            LOGGER.warning(
                "Cannot send %s (cmd=%s) - printer session is %s",
                verb or "command",
                int(cmd),
                self._state.value,
            )
            return None

        request_id = new_request_id()
        frame = encode(cmd, data, request_id=request_id)
        self._pending[request_id] = PendingCommand(
            request_id=request_id,
            cmd=int(cmd),
            verb=verb or str(int(cmd)),
            issued_at=time.monotonic(),
        )

        LOGGER.debug("Sending command: %s", frame)
        try:
            await transport.send(frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._pending.pop(request_id, None)
            LOGGER.warning("Failed to send %s to printer: %s", verb or cmd, exc)
            return None
        return request_id

    def handle_text(self, text: str) -> None:
        """Decode one inbound frame and route it."""

        try:
            frame = decode(text)
        except DecodeError as exc:
            LOGGER.error("Dropping malformed frame from printer: %s", exc)
            return

        self.last_frame_at = datetime.now(timezone.utc)
        if self._state == SessionState.VALIDATING:
            self._timers.cancel(_VALIDATION)
            LOGGER.info("Printer session validated")
            self._set_state(SessionState.CONNECTED)

        if isinstance(frame, StatusFrame):
            self._handle_status(frame)
        elif isinstance(frame, CommandResponseFrame):
            self._handle_response(frame)
        else:
            LOGGER.debug("Ignoring unrecognized frame: %s", frame.payload)

    def expire_pending(self) -> List[PendingCommand]:
        """Drop pending commands older than the configured command timeout."""

        timeout = self.config.command_timeout_ms / 1000.0
        if timeout <= 0:
            return []

        now = time.monotonic()
        expired = [
            pending
            for pending in self._pending.values()
            if now - pending.issued_at >= timeout
        ]
        for pending in expired:
            self._pending.pop(pending.request_id, None)
            LOGGER.warning(
                "No response to %s (cmd=%s, request=%s) after %.1fs",
                pending.verb,
                pending.cmd,
                pending.request_id,
                timeout,
            )
        return expired

    async def shutdown(self) -> None:
        """Tear the session down from any state. Never raises."""

        self._stopping = True
        self._set_state(SessionState.CLOSING)
        self._timers.cancel_all()
        self.alerts.shutdown()

        task, self._receive_task = self._receive_task, None
        transport, self._transport = self._transport, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

        if transport is not None:
            with contextlib.suppress(Exception):
                await transport.close()

        self._pending.clear()
        self._publish("info.connection", False)
        self._set_state(SessionState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_open(self) -> None:
        self._set_state(SessionState.VALIDATING)
        self._publish("info.connection", True)

        if self.alerts.is_active(AlertKind.CONNECTION_LOST):
            self.alerts.clear(AlertKind.CONNECTION_LOST)

        self._timers.call_every(
            _HEARTBEAT, self.config.heartbeat_interval_ms / 1000.0, self._heartbeat
        )
        self._timers.call_every(
            _POLL, self.config.poll_interval_ms / 1000.0, self._poll
        )
        self._timers.call_later(
            _VALIDATION,
            self.config.validation_timeout_ms / 1000.0,
            self._check_validation,
        )

    async def _receive_loop(self, transport: Transport) -> None:
        reason = "closed by printer"
        try:
            async for text in transport.messages():
                self.handle_text(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            reason = f"transport error: {exc}"
            LOGGER.warning("Printer websocket error: %s", exc)

        await self._handle_lost(transport, reason)

    async def _handle_lost(self, transport: Transport, reason: str) -> None:
        if transport is not self._transport:
            return

        self._transport = None
        self._receive_task = None
        self._last_snapshot = None
        for name in (_HEARTBEAT, _POLL, _VALIDATION):
            self._timers.cancel(name)

        with contextlib.suppress(Exception):
            await transport.close()

        if self._pending:
            LOGGER.debug("Discarding %d pending commands", len(self._pending))
            self._pending.clear()

        self._publish("info.connection", False)
        if self._stopping:
            return

        LOGGER.warning("Printer connection lost (%s)", reason)
        if not self.alerts.is_active(AlertKind.CONNECTION_LOST):
            self.alerts.trigger(
                AlertKind.CONNECTION_LOST, f"Connection to printer lost ({reason})"
            )
        self._set_state(SessionState.DISCONNECTED)
        self.schedule_reconnect()

    async def _reconnect(self) -> None:
        LOGGER.info("Attempting to reconnect to printer")
        await self.connect()

    async def _heartbeat(self) -> None:
        transport = self._transport
        if transport is None or transport.closed:
            return
        try:
            await transport.ping()
        except Exception as exc:
            LOGGER.warning("Printer heartbeat failed: %s", exc)

    async def _poll(self) -> None:
        self.expire_pending()
        await self.send_command(CommandCode.GET_STATUS, verb="request_status")

    def _check_validation(self) -> None:
        if self._state == SessionState.VALIDATING:
            LOGGER.warning(
                "No frame received from printer %.1fs after connecting; "
                "protocol may be incompatible",
                self.config.validation_timeout_ms / 1000.0,
            )

    def _handle_status(self, frame: StatusFrame) -> None:
        snapshot = normalize(frame.status)
        previous = self._last_snapshot
        self._last_snapshot = snapshot

        for path, value in snapshot_to_state(snapshot).items():
            self._publish(path, value)

        self.alerts.evaluate(previous, snapshot)

        for listener in list(self._status_listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Status listener failed")

    def _handle_response(self, frame: CommandResponseFrame) -> None:
        pending = None
        if frame.request_id is not None:
            pending = self._pending.pop(frame.request_id, None)

        if pending is None:
            LOGGER.debug("Received command response for cmd=%s: %s", frame.cmd, frame.data)
        else:
            LOGGER.debug(
                "Command %s (cmd=%s) answered after %.0f ms",
                pending.verb,
                pending.cmd,
                (time.monotonic() - pending.issued_at) * 1000.0,
            )

        ack = frame.data.get("Ack")
        if ack not in (None, 0):
            LOGGER.warning("Printer rejected cmd=%s (Ack=%s)", frame.cmd, ack)

        if frame.cmd == CommandCode.CAMERA:
            stream_url = frame.data.get("StreamUrl")
            if not stream_url and pending is not None and pending.verb == "enable_camera":
                stream_url = f"http://{self.config.host}:{self.config.camera_port}/video"
            if stream_url:
                self._publish("camera.stream_url", str(stream_url))

    def _set_state(self, state: SessionState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        LOGGER.debug("Session state %s -> %s", previous.value, state.value)
        self._publish("info.state", state.value)

        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                LOGGER.exception("Session state listener failed")

    def _publish(self, path: str, value: Any) -> None:
        try:
            self._store.publish(path, value)
        except Exception:
            LOGGER.exception("Failed to publish %s", path)
