"""MQTT adapter encapsulating paho-mqtt client usage."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import paho.mqtt.client as mqtt

from ..config import StoreConfig

LOGGER = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Awaitable[None] | None]
PublishListener = Callable[[str, Any, bool], None]

CONTROL_SUFFIX = "/set"


class MQTTConnectionError(RuntimeError):
    """Raised when the MQTT client fails to establish a connection."""


def _reason_value(reason_code: Any) -> int:
    value = getattr(reason_code, "value", reason_code)
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1


class MQTTClient:
    """Async-friendly wrapper over the threaded paho-mqtt client."""

    def __init__(
        self,
        config: StoreConfig,
        *,
        client_id: str,
        keepalive: int = 60,
    ) -> None:
        self.config = config
        self.client_id = client_id
        self.keepalive = keepalive

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected_event: Optional[asyncio.Event] = None
        self._disconnect_event: Optional[asyncio.Event] = None
        self._message_handler: Optional[MessageHandler] = None
        self._last_connect_rc: Optional[int] = None
        self._connected: bool = False
        self._connect_handlers: List[Callable[[int], None]] = []
        self._subscribe_handlers: List[Callable[[int], None]] = []

    async def connect(self, timeout: float = 30.0) -> None:
        """Connect to the MQTT broker and wait for acknowledgement."""

        self._loop = asyncio.get_running_loop()
        self._connected_event = asyncio.Event()
        self._disconnect_event = asyncio.Event()
        self._last_connect_rc = None

        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        client.enable_logger(LOGGER)

        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe

        self._client = client

        LOGGER.info(
            "Connecting to MQTT broker %s:%s",
            self.config.broker_host,
            self.config.broker_port,
        )

        client.connect_async(
            self.config.broker_host, self.config.broker_port, self.keepalive
        )
        client.loop_start()

        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
            if self._last_connect_rc is None or self._last_connect_rc != 0:
                raise MQTTConnectionError(
                    f"MQTT broker rejected connection (rc={self._last_connect_rc})"
                )
        except asyncio.TimeoutError as exc:
            client.loop_stop()
            raise MQTTConnectionError("Timed out connecting to MQTT broker") from exc
        except MQTTConnectionError:
            client.loop_stop()
            raise

    async def disconnect(self, timeout: float = 5.0) -> None:
        """Gracefully disconnect from the broker."""

        if not self._client:
            return

        assert self._disconnect_event is not None

        self._client.disconnect()

        try:
            await asyncio.wait_for(self._disconnect_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Timed out waiting for MQTT disconnect")
        finally:
            self._client.loop_stop()
            self._client = None
        self._connected = False

    def publish(
        self, topic: str, payload: bytes, qos: int = 1, retain: bool = False
    ) -> None:
        if not self._client:
            raise RuntimeError("MQTT client not connected")

        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Publish failed with rc={info.rc}")

    def subscribe(self, topic: str, qos: int = 1) -> int:
        """Subscribe to ``topic`` and return the message id of the request."""

        if not self._client:
            raise RuntimeError("MQTT client not connected")
        result, mid = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Subscribe failed with rc={result}")
        return mid

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._message_handler = handler

    def register_connect_handler(self, handler: Callable[[int], None]) -> None:
        self._connect_handlers.append(handler)

    def register_subscribe_handler(self, handler: Callable[[int], None]) -> None:
        """Call ``handler(mid)`` on the event loop when a SUBACK arrives."""

        self._subscribe_handlers.append(handler)

    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Internal callbacks bridging the threaded paho callbacks into asyncio
    # ------------------------------------------------------------------
    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        rc = _reason_value(reason_code)
        self._last_connect_rc = rc
        if rc == 0:
            LOGGER.info("Connected to MQTT broker")
            self._connected = True
            if self._connected_event and self._loop:
                self._loop.call_soon_threadsafe(self._connected_event.set)
            if self._loop:
                for handler in self._connect_handlers:
                    self._loop.call_soon_threadsafe(handler, rc)
        else:
            LOGGER.error("MQTT connection failed with rc=%s", rc)
            self._connected = False
            if self._connected_event and self._loop:
                self._loop.call_soon_threadsafe(self._connected_event.set)

    def _on_disconnect(
        self, client, userdata, flags, reason_code=None, properties=None
    ) -> None:
        LOGGER.info("Disconnected from MQTT broker (rc=%s)", _reason_value(reason_code))
        self._connected = False
        if self._disconnect_event and self._loop:
            self._loop.call_soon_threadsafe(self._disconnect_event.set)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        LOGGER.debug("Subscription %s acknowledged", mid)
        if self._loop:
            for handler in self._subscribe_handlers:
                self._loop.call_soon_threadsafe(handler, mid)

    def _on_message(self, client, userdata, message: mqtt.MQTTMessage) -> None:
        handler = self._message_handler
        loop = self._loop
        if not handler or not loop:
            return

        try:
            result = handler(message.topic, message.payload)
            if asyncio.iscoroutine(result):
                asyncio.run_coroutine_threadsafe(result, loop)
        except Exception:  # pragma: no cover
            LOGGER.exception("MQTT message handler raised an exception")


class MQTTStateStore:
    """State store publishing each path as a retained MQTT topic.

    ``temperature.hotbed`` maps to ``<prefix>/temperature/hotbed``. Writes to
    ``<prefix>/<path>/set`` are external triggers and reach listeners with
    ``ack=False``. Retained topics seen on subscribe prime ``read_last``.
    Call :meth:`wait_for_snapshot` after connecting so those retained values,
    the alert counter among them, are in place before anything publishes.
    """

    def __init__(self, client: MQTTClient, topic_prefix: str) -> None:
        self._client = client
        self._prefix = topic_prefix.strip("/")
        self._values: Dict[str, Any] = {}
        self._listeners: List[PublishListener] = []
        self._subscribe_mid: Optional[int] = None
        self._snapshot_ready = asyncio.Event()

        client.set_message_handler(self._handle_message)
        client.register_connect_handler(self._on_connected)
        client.register_subscribe_handler(self._on_subscribed)

    def topic_for(self, path: str) -> str:
        return f"{self._prefix}/{path.replace('.', '/')}"

    def path_for(self, topic: str) -> Optional[str]:
        prefix = f"{self._prefix}/"
        if not topic.startswith(prefix):
            return None
        return topic[len(prefix):].replace("/", ".")

    def publish(self, path: str, value: Any, *, ack: bool = True) -> None:
        self._values[path] = value
        payload = json.dumps(value).encode("utf-8")
        self._client.publish(self.topic_for(path), payload, qos=1, retain=True)

    def read_last(self, path: str) -> Optional[Any]:
        return self._values.get(path)

    def add_listener(self, listener: PublishListener) -> None:
        self._listeners.append(listener)

    async def wait_for_snapshot(self, timeout: float = 5.0, settle: float = 0.25) -> bool:
        """Wait for the prefix subscription to be acknowledged.

        Brokers deliver retained messages right after the SUBACK, so a short
        settle follows it. Returns False if no acknowledgement arrives.
        """

        try:
            await asyncio.wait_for(self._snapshot_ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning(
                "No subscription acknowledgement within %.1fs; retained state may be missing",
                timeout,
            )
            return False
        await asyncio.sleep(settle)
        return True

    def _on_connected(self, rc: int) -> None:
        topic = f"{self._prefix}/#"
        try:
            self._subscribe_mid = self._client.subscribe(topic)
        except (RuntimeError, MQTTConnectionError) as exc:
            LOGGER.error("Failed to subscribe to %s: %s", topic, exc)
        else:
            LOGGER.info("Subscribed to %s", topic)

    def _on_subscribed(self, mid: int) -> None:
        if mid == self._subscribe_mid:
            self._snapshot_ready.set()

    async def _handle_message(self, topic: str, payload: bytes) -> None:
        if topic.endswith(CONTROL_SUFFIX):
            path = self.path_for(topic[: -len(CONTROL_SUFFIX)])
            if path is None:
                return
            value = _decode_payload(payload)
            self._values[path] = value
            LOGGER.debug("Control write %s = %r", path, value)
            for listener in list(self._listeners):
                try:
                    listener(path, value, False)
                except Exception:
                    LOGGER.exception("State listener failed for %s", path)
            return

        path = self.path_for(topic)
        if path is not None and path not in self._values:
            self._values[path] = _decode_payload(payload)


def _decode_payload(payload: bytes) -> Any:
    text = payload.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text
