from pathlib import Path

from sdcp_bridge import constants
from sdcp_bridge.config import load_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "sdcp-bridge.cfg"
    config = load_config(config_path)

    assert config.path == config_path
    assert config.printer.host == "192.168.178.34"
    assert config.printer.port == 3030
    assert config.printer.camera_port == 3031
    assert config.printer.url == "ws://192.168.178.34:3030/websocket"
    assert config.printer.poll_interval_ms == 10_000
    assert config.printer.reconnect_interval_ms == 30_000
    assert config.printer.heartbeat_interval_ms == 30_000
    assert config.printer.validation_timeout_ms == 5_000
    assert config.printer.enable_auto_discovery is False
    assert config.alerts.clear_timeout_ms == 300_000
    assert config.alerts.cooldown_threshold == 40.0
    assert config.alerts.temperature_delta == 10.0
    assert config.store.backend == "mqtt"
    assert config.store.topic_prefix == constants.DEFAULT_TOPIC_PREFIX
    assert config.store.username is None
    assert config.logging.path is None
    assert config.health.enabled is False


def test_load_config_parses_printer_host_with_port(tmp_path: Path) -> None:
    config_path = tmp_path / "sdcp-bridge.cfg"
    config_path.write_text("[printer]\nhost = 10.0.0.9:4040\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.printer.host == "10.0.0.9"
    assert config.printer.port == 4040
    assert config.raw.get("printer", "host") == "10.0.0.9"
    assert config.raw.get("printer", "port") == "4040"


def test_load_config_overrides_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "sdcp-bridge.cfg"
    config_path.write_text(
        """
[printer]
host = printer.lan
poll_interval_ms = 5000
reconnect_interval_ms = 10
enable_auto_discovery = yes

[alerts]
clear_timeout_ms = 0
cooldown_threshold = 35.5

[store]
backend = Memory
topic_prefix = /farm/saturn/
username = bridge
password = secret

[logging]
level = DEBUG
path = ~/sdcp.log
log_network = true

[health]
enabled = true
port = 8081
        """.strip()
        + "\n",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.printer.host == "printer.lan"
    assert config.printer.poll_interval_ms == 5000
    assert config.printer.reconnect_interval_ms == 100
    assert config.printer.enable_auto_discovery is True
    assert config.alerts.clear_timeout_ms == 0
    assert config.alerts.cooldown_threshold == 35.5
    assert config.store.backend == "memory"
    assert config.store.topic_prefix == "farm/saturn"
    assert config.store.username == "bridge"
    assert config.store.password == "secret"
    assert config.logging.level == "DEBUG"
    assert config.logging.path == Path("~/sdcp.log").expanduser()
    assert config.logging.log_network is True
    assert config.health.enabled is True
    assert config.health.port == 8081
