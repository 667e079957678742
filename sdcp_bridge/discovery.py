"""Best-effort discovery of SDCP printers.

``probe`` performs a one-off handshake against a single host on its own
short-lived websocket; ``scan_subnet`` fans that probe out over a /24 with a
concurrency cap.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import List, Optional

import aiohttp

from . import constants
from .protocol import CommandCode, DecodeError, UnrecognizedFrame, decode, encode

LOGGER = logging.getLogger(__name__)


def build_url(host: str, port: int = constants.DEFAULT_PRINTER_PORT) -> str:
    return f"ws://{host}:{port}{constants.WEBSOCKET_PATH}"


async def probe(
    host: str,
    port: int = constants.DEFAULT_PRINTER_PORT,
    timeout: float = 2.0,
    *,
    session: Optional[aiohttp.ClientSession] = None,
) -> bool:
    """Return True if ``host`` answers a get-attributes request with an SDCP frame."""

    url = build_url(host, port)
    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))

    try:
        async with asyncio.timeout(timeout):
            async with session.ws_connect(url) as ws:
                await ws.send_str(encode(CommandCode.GET_ATTRIBUTES))
                async for message in ws:
                    if message.type != aiohttp.WSMsgType.TEXT:
                        if message.type == aiohttp.WSMsgType.ERROR:
                            break
                        continue
                    try:
                        frame = decode(message.data)
                    except DecodeError:
                        continue
                    if not isinstance(frame, UnrecognizedFrame):
                        LOGGER.debug("SDCP printer answered at %s", url)
                        return True
    except asyncio.TimeoutError:
        LOGGER.debug("Probe of %s timed out after %.1fs", url, timeout)
    except (aiohttp.ClientError, OSError) as exc:
        LOGGER.debug("Probe of %s failed: %s", url, exc)
    finally:
        if owns_session:
            await session.close()

    return False


async def scan_subnet(
    seed_host: str,
    port: int = constants.DEFAULT_PRINTER_PORT,
    timeout: float = 2.0,
    *,
    max_concurrency: int = 32,
) -> List[str]:
    """Probe every host of the /24 containing ``seed_host``.

    Returns responsive addresses in ascending order.

    Raises:
        ValueError: If ``seed_host`` is not an IPv4 address.
    """

    network = ipaddress.ip_network(f"{seed_host}/24", strict=False)
    if network.version != 4:
        raise ValueError(f"Subnet scanning needs an IPv4 address, got {seed_host!r}")

    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    hosts = [str(address) for address in network.hosts()]
    LOGGER.info("Scanning %s for SDCP printers (%d hosts)", network, len(hosts))

    async with aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=None)
    ) as session:

        async def _probe_one(host: str) -> Optional[str]:
            async with semaphore:
                if await probe(host, port, timeout, session=session):
                    return host
            return None

        results = await asyncio.gather(*(_probe_one(host) for host in hosts))

    found = [host for host in results if host is not None]
    found.sort(key=ipaddress.ip_address)
    LOGGER.info("Discovery found %d printer(s): %s", len(found), ", ".join(found) or "-")
    return found
