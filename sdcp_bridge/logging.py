"""Logging setup for the bridge process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Third-party libraries that log every websocket frame and MQTT packet.
LIBRARY_LOGGERS = ("aiohttp", "paho")

# Our loggers that trace SDCP frames and broker traffic at DEBUG.
TRAFFIC_LOGGERS = ("sdcp_bridge.session", "sdcp_bridge.adapters")


def resolve_level(level: str) -> int:
    """Map a level name to its number, falling back to INFO for unknown names."""

    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> int:
    """Install console (and optional file) handlers on the root logger.

    With ``log_network`` the traffic loggers and the aiohttp/paho loggers run
    at DEBUG whatever ``level`` says, so a frame trace can be captured without
    drowning the rest of the bridge in debug output. Without it the libraries
    are held at WARNING.

    Returns the resolved root level.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.captureWarnings(True)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    resolved = resolve_level(level)
    root.setLevel(resolved)

    library_level = logging.DEBUG if log_network else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    for name in TRAFFIC_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if log_network else logging.NOTSET)

    return resolved
