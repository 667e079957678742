import logging
from pathlib import Path

import pytest

from sdcp_bridge.logging import (
    LIBRARY_LOGGERS,
    LOG_FORMAT,
    TRAFFIC_LOGGERS,
    configure_logging,
    resolve_level,
)


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level = root.level
    named = {name: logging.getLogger(name).level for name in LIBRARY_LOGGERS + TRAFFIC_LOGGERS}

    yield

    for handler in list(root.handlers):
        if handler.formatter is not None and handler.formatter._fmt == LOG_FORMAT:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    for name, value in named.items():
        logging.getLogger(name).setLevel(value)
    logging.captureWarnings(False)


@pytest.mark.parametrize(
    "name,expected",
    [("debug", logging.DEBUG), (" WARNING ", logging.WARNING), ("chatty", logging.INFO)],
)
def test_resolve_level(name, expected):
    assert resolve_level(name) == expected


def test_quiet_by_default(tmp_path: Path):
    log_path = tmp_path / "logs" / "bridge.log"

    assert configure_logging("info", log_path=log_path) == logging.INFO

    logging.getLogger("sdcp_bridge.session").debug("frame trace")
    logging.getLogger("paho.client").info("packet trace")
    logging.getLogger("sdcp_bridge.app").info("bridge started")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_path.read_text(encoding="utf-8")
    assert "bridge started" in text
    assert "frame trace" not in text
    assert "packet trace" not in text
    assert logging.getLogger("aiohttp").level == logging.WARNING


def test_network_logging_traces_frames(tmp_path: Path):
    log_path = tmp_path / "bridge.log"

    configure_logging("WARNING", log_path=log_path, log_network=True)

    logging.getLogger("sdcp_bridge.session").debug("Sending command: {}")
    logging.getLogger("sdcp_bridge.alerts").info("not traced")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_path.read_text(encoding="utf-8")
    assert "| DEBUG | sdcp_bridge.session | Sending command: {}" in text
    assert "not traced" not in text
    assert logging.getLogger("paho").level == logging.DEBUG
