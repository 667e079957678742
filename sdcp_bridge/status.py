"""Normalization of SDCP status payloads into immutable snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

__all__ = [
    "COMPLETE_CODES",
    "ERROR_CODES",
    "FanSpeeds",
    "LightState",
    "PAUSED_CODES",
    "Position",
    "PrintInfo",
    "PrintStatusCode",
    "StatusSnapshot",
    "Temperatures",
    "format_time",
    "normalize",
    "parse_coordinates",
    "snapshot_to_state",
    "status_text",
]


class PrintStatusCode(IntEnum):
    IDLE = 0
    HOMING = 1
    DROPPING = 2
    EXPOSURING = 3
    LIFTING = 4
    PAUSING = 5
    PAUSED = 6
    STOPPING = 7
    STOPPED = 8
    COMPLETE = 9
    FILE_CHECKING = 10
    PRINTING = 13
    PRINT_COMPLETE = 14
    HEATING = 16
    BED_LEVELING = 20


_STATUS_LABELS: Dict[int, str] = {
    PrintStatusCode.IDLE: "Idle",
    PrintStatusCode.HOMING: "Homing",
    PrintStatusCode.DROPPING: "Dropping",
    PrintStatusCode.EXPOSURING: "Exposuring",
    PrintStatusCode.LIFTING: "Lifting",
    PrintStatusCode.PAUSING: "Pausing",
    PrintStatusCode.PAUSED: "Paused",
    PrintStatusCode.STOPPING: "Stopping",
    PrintStatusCode.STOPPED: "Stopped",
    PrintStatusCode.COMPLETE: "Print Complete",
    PrintStatusCode.FILE_CHECKING: "File Checking",
    PrintStatusCode.PRINTING: "Printing",
    PrintStatusCode.PRINT_COMPLETE: "Print Complete",
    PrintStatusCode.HEATING: "Heating",
    PrintStatusCode.BED_LEVELING: "Bed Leveling",
}

PAUSED_CODES: FrozenSet[int] = frozenset({PrintStatusCode.PAUSED})
COMPLETE_CODES: FrozenSet[int] = frozenset(
    {PrintStatusCode.COMPLETE, PrintStatusCode.PRINT_COMPLETE}
)
ERROR_CODES: FrozenSet[int] = frozenset({PrintStatusCode.STOPPED})


def status_text(code: Optional[int]) -> str:
    """Return the display label for a print status code."""

    if code is not None and code in _STATUS_LABELS:
        return _STATUS_LABELS[code]
    return f"Unknown Status ({code})"


def format_time(ticks: Optional[float]) -> str:
    """Format a millisecond tick count as ``HH:MM:SS``."""

    if ticks is None or ticks <= 0:
        return "00:00:00"
    total_seconds = int(ticks) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass(slots=True, frozen=True)
class Temperatures:
    hotbed: Optional[float] = None
    nozzle: Optional[float] = None
    box: Optional[float] = None
    hotbed_target: Optional[float] = None
    nozzle_target: Optional[float] = None
    box_target: Optional[float] = None


@dataclass(slots=True, frozen=True)
class Position:
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None


@dataclass(slots=True, frozen=True)
class FanSpeeds:
    model_fan: Optional[float] = None
    auxiliary_fan: Optional[float] = None
    box_fan: Optional[float] = None


@dataclass(slots=True, frozen=True)
class LightState:
    second_light: Optional[bool] = None
    rgb: Optional[Tuple[int, int, int]] = None


@dataclass(slots=True, frozen=True)
class PrintInfo:
    status: Optional[int] = None
    progress: Optional[float] = None
    current_layer: Optional[int] = None
    total_layers: Optional[int] = None
    filename: Optional[str] = None
    print_speed: Optional[float] = None
    current_ticks: Optional[int] = None
    total_ticks: Optional[int] = None

    @property
    def status_text(self) -> Optional[str]:
        if self.status is None:
            return None
        return status_text(self.status)


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    temperatures: Temperatures = field(default_factory=Temperatures)
    position: Position = field(default_factory=Position)
    z_offset: Optional[float] = None
    fans: FanSpeeds = field(default_factory=FanSpeeds)
    light: LightState = field(default_factory=LightState)
    print_info: PrintInfo = field(default_factory=PrintInfo)
    total_print_time: Optional[int] = None
    print_error: Optional[int] = None
    time_lapse_status: Optional[int] = None


def normalize(raw: Mapping[str, Any]) -> StatusSnapshot:
    """Map a raw ``Status`` payload onto a :class:`StatusSnapshot`.

    Missing or non-numeric fields stay ``None``; nothing defaults to zero.
    """

    fan_raw = _section(raw, "CurrentFanSpeed")
    light_raw = _section(raw, "LightStatus")
    info_raw = _section(raw, "PrintInfo")

    return StatusSnapshot(
        temperatures=Temperatures(
            hotbed=_safe_float(raw.get("TempOfHotbed")),
            nozzle=_safe_float(raw.get("TempOfNozzle")),
            box=_safe_float(raw.get("TempOfBox")),
            hotbed_target=_safe_float(raw.get("TempTargetHotbed")),
            nozzle_target=_safe_float(raw.get("TempTargetNozzle")),
            box_target=_safe_float(raw.get("TempTargetBox")),
        ),
        position=parse_coordinates(raw.get("CurrenCoord")),
        z_offset=_safe_float(raw.get("ZOffset")),
        fans=FanSpeeds(
            model_fan=_safe_float(fan_raw.get("ModelFan")),
            auxiliary_fan=_safe_float(fan_raw.get("AuxiliaryFan")),
            box_fan=_safe_float(fan_raw.get("BoxFan")),
        ),
        light=LightState(
            second_light=_coerce_bool(light_raw.get("SecondLight")),
            rgb=_parse_rgb(light_raw.get("RgbLight")),
        ),
        print_info=PrintInfo(
            status=_coerce_int(info_raw.get("Status")),
            progress=_safe_float(info_raw.get("Progress")),
            current_layer=_coerce_int(info_raw.get("CurrentLayer")),
            total_layers=_coerce_int(info_raw.get("TotalLayer")),
            filename=_coerce_str(info_raw.get("Filename")),
            print_speed=_safe_float(info_raw.get("PrintSpeedPct")),
            current_ticks=_coerce_int(info_raw.get("CurrentTicks")),
            total_ticks=_coerce_int(info_raw.get("TotalTicks")),
        ),
        total_print_time=_coerce_int(raw.get("TotalPrintTime")),
        print_error=_coerce_int(raw.get("PrintError")),
        time_lapse_status=_coerce_int(raw.get("TimeLapseStatus")),
    )


def parse_coordinates(value: Any) -> Position:
    """Parse an ``"x,y,z"`` string; fewer than three numbers yields no position."""

    if not isinstance(value, str):
        return Position()

    parts = value.split(",")
    if len(parts) < 3:
        return Position()

    coords = [_safe_float(part.strip()) for part in parts[:3]]
    if any(coord is None for coord in coords):
        return Position()

    x, y, z = coords
    return Position(x=x, y=y, z=z)


def snapshot_to_state(snapshot: StatusSnapshot) -> Dict[str, Any]:
    """Flatten a snapshot into store paths, omitting absent values."""

    temps = snapshot.temperatures
    info = snapshot.print_info
    light = snapshot.light

    state: Dict[str, Any] = {
        "temperature.hotbed": temps.hotbed,
        "temperature.nozzle": temps.nozzle,
        "temperature.box": temps.box,
        "temperature.hotbed_target": temps.hotbed_target,
        "temperature.nozzle_target": temps.nozzle_target,
        "temperature.box_target": temps.box_target,
        "position.x": snapshot.position.x,
        "position.y": snapshot.position.y,
        "position.z": snapshot.position.z,
        "position.z_offset": snapshot.z_offset,
        "fans.model_fan": snapshot.fans.model_fan,
        "fans.auxiliary_fan": snapshot.fans.auxiliary_fan,
        "fans.box_fan": snapshot.fans.box_fan,
        "lighting.second_light": light.second_light,
        "print.status": info.status,
        "print.status_text": info.status_text,
        "print.progress": info.progress,
        "print.current_layer": info.current_layer,
        "print.total_layers": info.total_layers,
        "print.filename": info.filename,
        "print.print_speed": info.print_speed,
        "print.current_ticks": info.current_ticks,
        "print.total_ticks": info.total_ticks,
        "print.total_print_time": snapshot.total_print_time,
        "print.error": snapshot.print_error,
        "print.time_lapse": snapshot.time_lapse_status,
    }

    if light.rgb is not None:
        state["lighting.rgb_r"], state["lighting.rgb_g"], state["lighting.rgb_b"] = light.rgb

    if info.current_ticks is not None:
        state["print.current_time"] = format_time(info.current_ticks)
    if info.total_ticks is not None:
        state["print.total_time"] = format_time(info.total_ticks)
    if info.current_ticks is not None and info.total_ticks is not None:
        state["print.remaining_time"] = format_time(info.total_ticks - info.current_ticks)

    return {path: value for path, value in state.items() if value is not None}


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, Mapping) else {}


def _parse_rgb(value: Any) -> Optional[Tuple[int, int, int]]:
    if not isinstance(value, (list, tuple)) or len(value) < 3:
        return None
    channels = [_coerce_int(item) for item in value[:3]]
    if any(channel is None for channel in channels):
        return None
    r, g, b = (max(0, min(255, channel)) for channel in channels)
    return (r, g, b)


def _safe_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(numeric) or math.isinf(numeric):
        return None
    return numeric


def _coerce_int(value: Any) -> Optional[int]:
    numeric = _safe_float(value)
    if numeric is None:
        return None
    return int(numeric)


def _coerce_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    numeric = _safe_float(value)
    if numeric is None:
        return None
    return numeric != 0


def _coerce_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)
