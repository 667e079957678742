"""Command-line interface for sdcp-bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import BridgeApp
from .config import load_config
from .discovery import probe
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdcp-bridge", description="Bridge an SDCP printer to a state store"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the bridge")

    probe_parser = subparsers.add_parser(
        "probe", help="Check whether a printer answers SDCP requests"
    )
    probe_parser.add_argument("--host", help="Printer address (default: configured host)")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        BridgeApp.start(config)
        return 0

    if args.command == "probe":
        configure_logging(config.logging.level)
        host = args.host or config.printer.host
        timeout = config.printer.discovery_timeout_ms / 1000.0
        if asyncio.run(probe(host, config.printer.port, timeout)):
            print(f"SDCP printer found at {host}:{config.printer.port}")
            return 0
        print(f"No SDCP printer answered at {host}:{config.printer.port}")
        return 1

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
