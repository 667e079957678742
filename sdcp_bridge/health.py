"""Health reporting for the running bridge."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from aiohttp import web

LOGGER = logging.getLogger(__name__)

DetailProvider = Callable[[], Dict[str, object]]


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Tracks component statuses plus a live printer summary.

    All updates happen on the event loop thread, so no locking is needed.
    """

    def __init__(self, printer_details: Optional[DetailProvider] = None) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._printer_details = printer_details

    def update(self, name: str, healthy: bool, detail: Optional[str] = None) -> None:
        previous = self._status.get(name)
        if previous is None or previous.healthy != healthy or previous.detail != detail:
            LOGGER.debug("Health %s: healthy=%s (%s)", name, healthy, detail)
        self._status[name] = ComponentStatus(name=name, healthy=healthy, detail=detail)

    def snapshot(self) -> Dict[str, object]:
        components = [status.as_dict() for status in self._status.values()]
        healthy = all(item["healthy"] for item in components)

        payload: Dict[str, object] = {
            "status": "ok" if healthy else "degraded",
            "components": components,
        }
        if self._printer_details is not None:
            try:
                payload["printer"] = self._printer_details()
            except Exception:
                LOGGER.exception("Failed to collect printer health details")
        return payload


class HealthServer:
    """Minimal HTTP server exposing `/healthz` for status checks."""

    def __init__(self, reporter: HealthReporter, host: str, port: int) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)
