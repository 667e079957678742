"""Configuration loader for sdcp-bridge."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class PrinterConfig:
    host: str = constants.DEFAULT_PRINTER_HOST
    port: int = constants.DEFAULT_PRINTER_PORT
    camera_port: int = constants.DEFAULT_CAMERA_PORT
    poll_interval_ms: int = 10_000
    reconnect_interval_ms: int = 30_000
    heartbeat_interval_ms: int = 30_000
    validation_timeout_ms: int = 5_000
    command_timeout_ms: int = 30_000
    enable_auto_discovery: bool = False
    discovery_timeout_ms: int = 2_000

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{constants.WEBSOCKET_PATH}"


@dataclass(slots=True)
class AlertConfig:
    clear_timeout_ms: int = 300_000
    cooldown_threshold: float = 40.0
    temperature_delta: float = 10.0


@dataclass(slots=True)
class StoreConfig:
    backend: str = "mqtt"
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    topic_prefix: str = constants.DEFAULT_TOPIC_PREFIX


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class BridgeConfig:
    printer: PrinterConfig
    alerts: AlertConfig
    store: StoreConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def load_config(path: Optional[Path] = None) -> BridgeConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "printer": {
                "host": constants.DEFAULT_PRINTER_HOST,
                "port": str(constants.DEFAULT_PRINTER_PORT),
                "camera_port": str(constants.DEFAULT_CAMERA_PORT),
                "poll_interval_ms": "10000",
                "reconnect_interval_ms": "30000",
                "heartbeat_interval_ms": "30000",
                "validation_timeout_ms": "5000",
                "command_timeout_ms": "30000",
                "enable_auto_discovery": "false",
                "discovery_timeout_ms": "2000",
            },
            "alerts": {
                "clear_timeout_ms": "300000",
                "cooldown_threshold": "40",
                "temperature_delta": "10",
            },
            "store": {
                "backend": "mqtt",
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
                "topic_prefix": constants.DEFAULT_TOPIC_PREFIX,
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    host_value = parser.get("printer", "host").strip()
    port_value = parser.getint("printer", "port", fallback=constants.DEFAULT_PRINTER_PORT)

    if ":" in host_value:
        host_part, port_part = host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            host_value = host_part
            port_value = parsed_port
            parser.set("printer", "host", host_part)
            parser.set("printer", "port", str(parsed_port))

    printer = PrinterConfig(
        host=host_value,
        port=port_value,
        camera_port=parser.getint(
            "printer", "camera_port", fallback=constants.DEFAULT_CAMERA_PORT
        ),
        poll_interval_ms=max(
            100, parser.getint("printer", "poll_interval_ms", fallback=10_000)
        ),
        reconnect_interval_ms=max(
            100, parser.getint("printer", "reconnect_interval_ms", fallback=30_000)
        ),
        heartbeat_interval_ms=max(
            100, parser.getint("printer", "heartbeat_interval_ms", fallback=30_000)
        ),
        validation_timeout_ms=max(
            0, parser.getint("printer", "validation_timeout_ms", fallback=5_000)
        ),
        command_timeout_ms=max(
            0, parser.getint("printer", "command_timeout_ms", fallback=30_000)
        ),
        enable_auto_discovery=parser.getboolean(
            "printer", "enable_auto_discovery", fallback=False
        ),
        discovery_timeout_ms=max(
            100, parser.getint("printer", "discovery_timeout_ms", fallback=2_000)
        ),
    )

    alerts = AlertConfig(
        clear_timeout_ms=max(
            0, parser.getint("alerts", "clear_timeout_ms", fallback=300_000)
        ),
        cooldown_threshold=parser.getfloat(
            "alerts", "cooldown_threshold", fallback=40.0
        ),
        temperature_delta=max(
            0.0, parser.getfloat("alerts", "temperature_delta", fallback=10.0)
        ),
    )

    store = StoreConfig(
        backend=parser.get("store", "backend", fallback="mqtt").strip().lower(),
        broker_host=parser.get("store", "broker_host"),
        broker_port=parser.getint(
            "store", "broker_port", fallback=constants.DEFAULT_BROKER_PORT
        ),
        username=parser.get("store", "username", fallback=None),
        password=parser.get("store", "password", fallback=None),
        topic_prefix=parser.get("store", "topic_prefix").strip("/")
        or constants.DEFAULT_TOPIC_PREFIX,
    )

    log_path_value = parser.get("logging", "path", fallback="")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return BridgeConfig(
        printer=printer,
        alerts=alerts,
        store=store,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )
