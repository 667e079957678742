"""Main application entry-point for sdcp-bridge."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Optional

from . import constants
from .adapters import MQTTClient, MQTTConnectionError, MQTTStateStore
from .commands import CommandDispatcher, ControlSurface
from .config import BridgeConfig, load_config
from .core import StateStore
from .discovery import probe, scan_subnet
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .session import Session, SessionState, TransportFactory
from .store import MemoryStateStore

LOGGER = logging.getLogger(__name__)


class BridgeApp:
    """Coordinates application startup and shutdown.

    Wires the state store, the printer session, the command dispatcher and
    the control surface together and keeps them running until shutdown.
    The store and transport can be injected for testing.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        store: Optional[StateStore] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self._config = config or load_config()
        self._store: Optional[StateStore] = store
        self._transport_factory = transport_factory
        self._mqtt_client: Optional[MQTTClient] = None
        self._session: Optional[Session] = None
        self._dispatcher: Optional[CommandDispatcher] = None
        self._control: Optional[ControlSurface] = None
        self._health = HealthReporter(self._printer_details)
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def dispatcher(self) -> Optional[CommandDispatcher]:
        return self._dispatcher

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()

        LOGGER.info("sdcp-bridge starting with config: %s", self._config.path)
        try:
            if not await self._start_services():
                LOGGER.error("Service startup failed; exiting")
                return
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("sdcp-bridge received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[BridgeConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("sdcp-bridge received shutdown signal")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def _start_services(self) -> bool:
        if self._store is None:
            store = await self._build_store()
            if store is None:
                return False
            self._store = store
        self._health.update("store", True, self._config.store.backend)

        await self._resolve_printer_host()

        session = Session(
            self._config.printer,
            self._store,
            transport_factory=self._transport_factory,
            alert_config=self._config.alerts,
        )
        session.add_state_listener(self._on_session_state)
        self._session = session
        self._health.update("printer", False, SessionState.DISCONNECTED.value)

        self._dispatcher = CommandDispatcher(session, self._store)
        self._control = ControlSurface(self._dispatcher, session.alerts, self._store)
        self._control.attach()
        self._control.publish_defaults()

        await self._start_health_server()
        await session.start()
        return True

    async def _stop_services(self) -> None:
        if self._control is not None:
            await self._control.close()
            self._control = None

        if self._session is not None:
            await self._session.shutdown()
            self._session = None

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        if self._mqtt_client is not None:
            await self._mqtt_client.disconnect()
            self._mqtt_client = None

    async def _build_store(self) -> Optional[StateStore]:
        store_config = self._config.store
        if store_config.backend == "memory":
            LOGGER.info("Using in-memory state store")
            return MemoryStateStore()

        if store_config.backend != "mqtt":
            LOGGER.error("Unknown store backend: %s", store_config.backend)
            return None

        client = MQTTClient(store_config, client_id=f"{constants.APP_NAME}-{os.getpid()}")
        store = MQTTStateStore(client, store_config.topic_prefix)
        try:
            await client.connect()
        except MQTTConnectionError as exc:
            LOGGER.error("Failed to connect to MQTT broker: %s", exc)
            return None

        self._mqtt_client = client
        if await store.wait_for_snapshot():
            LOGGER.info("Retained state under %s/# loaded", store_config.topic_prefix)
        return store

    async def _resolve_printer_host(self) -> None:
        printer = self._config.printer
        if not printer.enable_auto_discovery:
            return

        timeout = printer.discovery_timeout_ms / 1000.0
        if await probe(printer.host, printer.port, timeout):
            LOGGER.info("Printer answered at configured host %s", printer.host)
            return

        try:
            found = await scan_subnet(printer.host, printer.port, timeout)
        except ValueError as exc:
            LOGGER.warning("Auto-discovery skipped: %s", exc)
            return

        if not found:
            LOGGER.warning(
                "No printer found near %s; keeping configured host", printer.host
            )
            return

        LOGGER.info("Using discovered printer at %s", found[0])
        printer.host = found[0]

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(self._health, health.host, health.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            self._health.update("health-endpoint", True, None)

    def _on_session_state(self, state: SessionState) -> None:
        self._health.update("printer", state == SessionState.CONNECTED, state.value)

    def _printer_details(self) -> Dict[str, object]:
        session = self._session
        if session is None:
            return {"host": self._config.printer.host, "state": None}

        return {
            "host": self._config.printer.host,
            "state": session.state.value,
            "lastFrameAt": (
                session.last_frame_at.isoformat(timespec="seconds")
                if session.last_frame_at
                else None
            ),
            "pendingCommands": len(session.pending_commands),
            "alertCount": session.alerts.alert_count,
        }
