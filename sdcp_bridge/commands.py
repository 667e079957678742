"""Verb-level printer commands and the store-driven control surface."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from . import constants
from .alerts import AlertEngine
from .core import StateStore
from .protocol import CommandCode
from .session import Session, SessionState

LOGGER = logging.getLogger(__name__)

PRINT_FILE_PATH = "control.print_file"
CAMERA_ENABLED_PATH = "camera.enabled"

_FAN_FIELDS = {
    "model": "ModelFan",
    "model_fan": "ModelFan",
    "auxiliary": "AuxiliaryFan",
    "auxiliary_fan": "AuxiliaryFan",
    "box": "BoxFan",
    "box_fan": "BoxFan",
}


class CommandDispatcher:
    """Builds SDCP commands for each verb and sends them through the session.

    Every verb is a no-op with a single warning unless the session is
    connected; nothing is queued for later delivery.
    """

    def __init__(self, session: Session, store: StateStore) -> None:
        self._session = session
        self._store = store

    @property
    def camera_enabled(self) -> bool:
        """Last published camera state, including one retained from a previous run."""

        return self._store.read_last(CAMERA_ENABLED_PATH) is True

    async def request_status(self) -> Optional[str]:
        return await self._dispatch("request_status", CommandCode.GET_STATUS)

    async def pause(self) -> Optional[str]:
        return await self._dispatch("pause", CommandCode.PAUSE_PRINT)

    async def resume(self) -> Optional[str]:
        return await self._dispatch("resume", CommandCode.RESUME_PRINT)

    async def cancel(self) -> Optional[str]:
        return await self._dispatch("cancel", CommandCode.CANCEL_PRINT)

    async def start_print(self, filename: Optional[str] = None) -> Optional[str]:
        """Start printing ``filename`` or the configured ``control.print_file``."""

        if not self._guard("start_print"):
            return None

        if filename is None:
            stored = self._store.read_last(PRINT_FILE_PATH)
            filename = str(stored) if stored is not None else ""

        filename = filename.strip()
        if not filename:
            LOGGER.warning("No file specified for printing")
            return None

        if not filename.startswith(constants.LOCAL_FILE_PREFIX):
            filename = f"{constants.LOCAL_FILE_PREFIX}{filename.lstrip('/')}"

        return await self._session.send_command(
            CommandCode.START_PRINT,
            {
                "Filename": filename,
                "StartLayer": 0,
                "Calibration_switch": 0,
                "PrintPlatformType": 0,
                "Tlp_Switch": 0,
            },
            verb="start_print",
        )

    async def toggle_light(self) -> Optional[str]:
        """Invert the last observed light state, keeping the RGB colour."""

        if not self._guard("toggle_light"):
            return None

        snapshot = self._session.last_snapshot
        current = snapshot.light.second_light if snapshot else None
        rgb = snapshot.light.rgb if snapshot and snapshot.light.rgb else (0, 0, 0)
        target = True if current is None else not current

        return await self._session.send_command(
            CommandCode.SET_CONTROL,
            {"LightStatus": {"SecondLight": target, "RgbLight": list(rgb)}},
            verb="toggle_light",
        )

    async def enable_camera(self) -> Optional[str]:
        return await self._set_camera(True)

    async def disable_camera(self) -> Optional[str]:
        return await self._set_camera(False)

    async def toggle_camera(self) -> Optional[str]:
        return await self._set_camera(not self.camera_enabled)

    async def set_fan(self, which: str, percent: float) -> Optional[str]:
        """Set one fan to ``percent`` (clamped to 0-100).

        Raises:
            ValueError: If ``which`` is not a known fan.
        """

        field = _FAN_FIELDS.get(which.strip().lower())
        if field is None:
            raise ValueError(f"Unsupported fan: {which!r}")

        if not self._guard("set_fan"):
            return None

        value = int(round(max(0.0, min(100.0, float(percent)))))
        return await self._session.send_command(
            CommandCode.SET_CONTROL,
            {"TargetFanSpeed": {field: value}},
            verb="set_fan",
        )

    async def _set_camera(self, enabled: bool) -> Optional[str]:
        verb = "enable_camera" if enabled else "disable_camera"
        if not self._guard(verb):
            return None

        request_id = await self._session.send_command(
            CommandCode.CAMERA, {"Enable": 1 if enabled else 0}, verb=verb
        )
        if request_id is not None:
            try:
                self._store.publish(CAMERA_ENABLED_PATH, enabled)
            except Exception:
                LOGGER.exception("Failed to publish %s", CAMERA_ENABLED_PATH)
        return request_id

    async def _dispatch(self, verb: str, cmd: CommandCode) -> Optional[str]:
        if not self._guard(verb):
            return None
        return await self._session.send_command(cmd, verb=verb)

    def _guard(self, verb: str) -> bool:
        if self._session.state != SessionState.CONNECTED:
            LOGGER.warning("Cannot %s - not connected to printer", verb)
            return False
        return True


class ControlNames:
    """Writable control paths, relative to ``control.``."""

    START_PRINT = "start_print"
    PAUSE_PRINT = "pause_print"
    RESUME_PRINT = "resume_print"
    CANCEL_PRINT = "cancel_print"
    TOGGLE_LIGHT = "toggle_light"
    TOGGLE_CAMERA = "toggle_camera"
    REQUEST_STATUS = "request_status"
    CLEAR_ALERTS = "clear_alerts"
    PRINT_FILE = "print_file"


class ControlSurface:
    """Routes external control writes from the store to dispatcher verbs.

    Buttons fire on a truthy, unacknowledged write and are reset to
    ``False``; the print filename is stored and acknowledged.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        alerts: AlertEngine,
        store: StateStore,
    ) -> None:
        self._dispatcher = dispatcher
        self._alerts = alerts
        self._store = store
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._buttons: Dict[str, Callable[[], Awaitable[Any]]] = {
            ControlNames.START_PRINT: dispatcher.start_print,
            ControlNames.PAUSE_PRINT: dispatcher.pause,
            ControlNames.RESUME_PRINT: dispatcher.resume,
            ControlNames.CANCEL_PRINT: dispatcher.cancel,
            ControlNames.TOGGLE_LIGHT: dispatcher.toggle_light,
            ControlNames.TOGGLE_CAMERA: dispatcher.toggle_camera,
            ControlNames.REQUEST_STATUS: dispatcher.request_status,
            ControlNames.CLEAR_ALERTS: self._clear_alerts,
        }

    def attach(self) -> None:
        self._store.add_listener(self.on_write)

    def publish_defaults(self) -> None:
        for name in self._buttons:
            self._publish(f"control.{name}", False)

    def on_write(self, path: str, value: Any, ack: bool) -> None:
        if ack or not path.startswith("control."):
            return
        task = asyncio.get_running_loop().create_task(self.handle(path, value))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle(self, path: str, value: Any) -> None:
        name = path.split(".", 1)[1]

        if name == ControlNames.PRINT_FILE:
            filename = "" if value is None else str(value)
            LOGGER.info("Print file set to %r", filename)
            self._publish(PRINT_FILE_PATH, filename)
            return

        action = self._buttons.get(name)
        if action is None:
            LOGGER.debug("Ignoring write to unknown control %s", path)
            return

        if not _is_pressed(value):
            return

        try:
            await action()
        except Exception:
            LOGGER.exception("Control %s failed", name)
        finally:
            self._publish(path, False)

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _clear_alerts(self) -> None:
        self._alerts.clear_all()

    def _publish(self, path: str, value: Any) -> None:
        try:
            self._store.publish(path, value)
        except Exception:
            LOGGER.exception("Failed to publish %s", path)


def _is_pressed(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "on", "yes", "press"}
    return bool(value)
