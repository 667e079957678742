"""Constants used across the sdcp-bridge package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "sdcp-bridge"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_PRINTER_HOST = "192.168.178.34"
DEFAULT_PRINTER_PORT = 3030
DEFAULT_CAMERA_PORT = 3031
WEBSOCKET_PATH = "/websocket"

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883
DEFAULT_TOPIC_PREFIX = "sdcp"

LOCAL_FILE_PREFIX = "/local/"
