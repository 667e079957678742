"""SDCP wire codec.

Outbound commands are wrapped in the envelope the printer expects::

    {"Id": "", "Data": {"Cmd": 0, "Data": {}, "RequestID": "...",
                        "MainboardID": "", "TimeStamp": 1700000000000, "From": 1}}

Inbound frames are either status pushes (top-level ``Status``) or command
responses (``Data.Cmd``). Everything else is reported as unrecognized.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Union

__all__ = [
    "CommandCode",
    "CommandResponseFrame",
    "DecodeError",
    "Frame",
    "StatusFrame",
    "UnrecognizedFrame",
    "decode",
    "encode",
]


class CommandCode(IntEnum):
    GET_STATUS = 0
    GET_ATTRIBUTES = 1
    START_PRINT = 128
    PAUSE_PRINT = 129
    CANCEL_PRINT = 130
    RESUME_PRINT = 131
    CAMERA = 386
    SET_CONTROL = 403


class DecodeError(ValueError):
    """Raised when an inbound frame is not a JSON object."""


@dataclass(slots=True, frozen=True)
class StatusFrame:
    status: Dict[str, Any]


@dataclass(slots=True, frozen=True)
class CommandResponseFrame:
    cmd: int
    data: Dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class UnrecognizedFrame:
    payload: Any


Frame = Union[StatusFrame, CommandResponseFrame, UnrecognizedFrame]


def new_request_id() -> str:
    return uuid.uuid4().hex


def encode(
    cmd: int,
    data: Optional[Mapping[str, Any]] = None,
    *,
    request_id: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> str:
    """Serialize a command envelope to JSON text."""

    envelope = {
        "Id": "",
        "Data": {
            "Cmd": int(cmd),
            "Data": dict(data or {}),
            "RequestID": request_id or new_request_id(),
            "MainboardID": "",
            "TimeStamp": timestamp if timestamp is not None else int(time.time() * 1000),
            "From": 1,
        },
    }
    return json.dumps(envelope, separators=(",", ":"))


def decode(text: Union[str, bytes]) -> Frame:
    """Parse and classify one inbound frame.

    Raises:
        DecodeError: If the text is not valid JSON or not a JSON object.
    """

    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Malformed SDCP frame: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError(f"SDCP frame is not an object: {type(payload).__name__}")

    status = payload.get("Status")
    if isinstance(status, dict):
        return StatusFrame(status=status)

    data = payload.get("Data")
    if isinstance(data, dict) and "Cmd" in data:
        try:
            cmd = int(data["Cmd"])
        except (TypeError, ValueError):
            return UnrecognizedFrame(payload=payload)

        inner = data.get("Data")
        request_id = data.get("RequestID")
        return CommandResponseFrame(
            cmd=cmd,
            data=inner if isinstance(inner, dict) else {},
            request_id=str(request_id) if request_id else None,
        )

    return UnrecognizedFrame(payload=payload)
