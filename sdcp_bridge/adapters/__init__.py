"""Adapter modules for external integrations."""

from .mqtt import MQTTClient, MQTTConnectionError, MQTTStateStore
from .websocket import WebSocketTransport

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "MQTTStateStore",
    "WebSocketTransport",
]
