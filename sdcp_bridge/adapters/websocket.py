"""aiohttp websocket transport for SDCP printers."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import aiohttp

LOGGER = logging.getLogger(__name__)


class WebSocketTransport:
    """Single-use websocket connection implementing the ``Transport`` protocol.

    The session creates one instance per connection attempt; once closed the
    instance is discarded.
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self.connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed

    async def open(self, url: str) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

        try:
            async with asyncio.timeout(self.connect_timeout):
                self._ws = await self._session.ws_connect(url, autoping=True)
        except Exception:
            await self._release_session()
            raise

    async def send(self, text: str) -> None:
        ws = self._require_ws()
        await ws.send_str(text)

    async def ping(self) -> None:
        ws = self._require_ws()
        await ws.ping()

    async def messages(self) -> AsyncIterator[str]:
        ws = self._require_ws()
        async for message in ws:
            if message.type == aiohttp.WSMsgType.TEXT:
                yield message.data
            elif message.type == aiohttp.WSMsgType.BINARY:
                try:
                    yield message.data.decode("utf-8")
                except UnicodeDecodeError:
                    LOGGER.debug("Ignoring non-UTF-8 binary frame (%d bytes)", len(message.data))
            elif message.type == aiohttp.WSMsgType.ERROR:
                raise ws.exception() or RuntimeError("Websocket error")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        try:
            if ws is not None and not ws.closed:
                await ws.close()
        finally:
            await self._release_session()

    def _require_ws(self) -> aiohttp.ClientWebSocketResponse:
        if self._ws is None:
            raise RuntimeError("Websocket is not open")
        return self._ws

    async def _release_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
