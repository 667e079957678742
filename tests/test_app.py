"""End-to-end wiring of the bridge with an in-memory store."""

import asyncio
from configparser import ConfigParser
from pathlib import Path

import pytest

from sdcp_bridge import app as app_module
from sdcp_bridge.app import BridgeApp
from sdcp_bridge.config import (
    AlertConfig,
    BridgeConfig,
    HealthConfig,
    LoggingConfig,
    PrinterConfig,
    StoreConfig,
)
from sdcp_bridge.protocol import CommandCode
from sdcp_bridge.session import SessionState
from sdcp_bridge.store import MemoryStateStore


def _build_config(**printer) -> BridgeConfig:
    return BridgeConfig(
        printer=PrinterConfig(host="10.0.0.5", **printer),
        alerts=AlertConfig(),
        store=StoreConfig(backend="memory"),
        logging=LoggingConfig(),
        health=HealthConfig(),
        raw=ConfigParser(),
        path=Path("sdcp-bridge.cfg"),
    )


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_app_bridges_controls_to_printer(store, transport_factory, make_status):
    app = BridgeApp(_build_config(), store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: transport_factory.transports)
    transport = transport_factory.current
    await _wait_for(lambda: transport.sent)
    transport.feed(make_status(print_status=13, hotbed=60))
    await _wait_for(lambda: app.session is not None and app.session.is_connected)

    assert store.read_last("control.pause_print") is False
    assert store.read_last("print.status_text") == "Printing"

    store.publish("control.pause_print", True, ack=False)
    await _wait_for(lambda: CommandCode.PAUSE_PRINT in transport.sent_cmds)
    await _wait_for(lambda: store.read_last("control.pause_print") is False)

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)

    assert transport.closed
    assert app.session is None
    assert store.read_last("info.connection") is False


@pytest.mark.asyncio
async def test_app_reports_printer_details(store, transport_factory):
    app = BridgeApp(_build_config(), store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(
        lambda: app.session is not None
        and app.session.state == SessionState.VALIDATING
        and app.session.pending_commands
    )
    details = app._printer_details()

    assert details["host"] == "10.0.0.5"
    assert details["state"] == "validating"
    assert details["pendingCommands"] == 1

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)


@pytest.mark.asyncio
async def test_app_uses_memory_backend_from_config(transport_factory):
    app = BridgeApp(_build_config(), transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: app.session is not None)
    assert isinstance(app._store, MemoryStateStore)

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)


@pytest.mark.asyncio
async def test_app_exits_on_unknown_backend(transport_factory):
    config = _build_config()
    config.store.backend = "redis"
    app = BridgeApp(config, transport_factory=transport_factory)

    await asyncio.wait_for(app.run(), timeout=1.0)

    assert transport_factory.transports == []


def _patch_discovery(monkeypatch, *, answering, found):
    calls = {"checked": [], "scan": []}

    async def fake_handshake(host, port, timeout):
        calls["checked"].append(host)
        return host in answering

    async def fake_scan(seed_host, port, timeout):
        calls["scan"].append(seed_host)
        return list(found)

    monkeypatch.setattr(app_module, "probe", fake_handshake)
    monkeypatch.setattr(app_module, "scan_subnet", fake_scan)
    return calls


@pytest.mark.asyncio
async def test_auto_discovery_switches_to_first_responder(
    monkeypatch, store, transport_factory
):
    calls = _patch_discovery(
        monkeypatch, answering=set(), found=["10.0.0.7", "10.0.0.9"]
    )
    config = _build_config(enable_auto_discovery=True)
    app = BridgeApp(config, store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: transport_factory.transports)

    assert calls == {"checked": ["10.0.0.5"], "scan": ["10.0.0.5"]}
    assert config.printer.host == "10.0.0.7"
    assert transport_factory.current.url == "ws://10.0.0.7:3030/websocket"

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)


@pytest.mark.asyncio
async def test_auto_discovery_keeps_answering_host(monkeypatch, store, transport_factory):
    calls = _patch_discovery(monkeypatch, answering={"10.0.0.5"}, found=["10.0.0.7"])
    config = _build_config(enable_auto_discovery=True)
    app = BridgeApp(config, store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: transport_factory.transports)

    assert calls == {"checked": ["10.0.0.5"], "scan": []}
    assert config.printer.host == "10.0.0.5"

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)


@pytest.mark.asyncio
async def test_auto_discovery_without_responders_keeps_configured_host(
    monkeypatch, store, transport_factory
):
    _patch_discovery(monkeypatch, answering=set(), found=[])
    config = _build_config(enable_auto_discovery=True)
    app = BridgeApp(config, store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: transport_factory.transports)
    assert transport_factory.current.url == "ws://10.0.0.5:3030/websocket"

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)


@pytest.mark.asyncio
async def test_discovery_skipped_when_disabled(monkeypatch, store, transport_factory):
    calls = _patch_discovery(monkeypatch, answering=set(), found=["10.0.0.7"])
    app = BridgeApp(_build_config(), store=store, transport_factory=transport_factory)
    runner = asyncio.create_task(app.run())

    await _wait_for(lambda: transport_factory.transports)
    assert calls == {"checked": [], "scan": []}

    app.request_shutdown()
    await asyncio.wait_for(runner, timeout=1.0)
