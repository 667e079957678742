"""Edge-triggered alerts derived from consecutive status snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .config import AlertConfig
from .core import Scheduler, StateStore, TimerGroup
from .status import COMPLETE_CODES, ERROR_CODES, PAUSED_CODES, StatusSnapshot

LOGGER = logging.getLogger(__name__)

LAST_ALERT_PATH = "alerts.last_alert"
ALERT_COUNT_PATH = "alerts.count"


class AlertKind(str, Enum):
    PRINT_COMPLETE = "print_complete"
    PRINT_PAUSED = "print_paused"
    PRINT_ERROR = "print_error"
    BED_COOLED = "bed_cooled"
    CONNECTION_LOST = "connection_lost"

    @property
    def path(self) -> str:
        return f"alerts.{self.value}"


@dataclass(slots=True)
class AlertRecord:
    kind: AlertKind
    active: bool = False
    last_message: Optional[str] = None
    triggered_at: Optional[datetime] = None


class AlertEngine:
    """Tracks alert state per kind and publishes it to the store.

    Every ``trigger`` call bumps the global counter and re-arms that kind's
    auto-clear timer. The counter never decreases; it is seeded from the
    store's last published value the first time it is needed.
    """

    def __init__(
        self,
        store: StateStore,
        scheduler: Scheduler,
        config: Optional[AlertConfig] = None,
    ) -> None:
        self._store = store
        self._config = config or AlertConfig()
        self._timers = TimerGroup(scheduler)
        self._records: Dict[AlertKind, AlertRecord] = {}
        self._count: Optional[int] = None

    @property
    def alert_count(self) -> int:
        return self._ensure_count()

    def record(self, kind: AlertKind) -> Optional[AlertRecord]:
        return self._records.get(kind)

    def is_active(self, kind: AlertKind) -> bool:
        record = self._records.get(kind)
        return record is not None and record.active

    def has_clear_timer(self, kind: AlertKind) -> bool:
        return self._timers.is_active(kind.value)

    # ------------------------------------------------------------------
    # Snapshot evaluation
    # ------------------------------------------------------------------
    def evaluate(
        self, previous: Optional[StatusSnapshot], current: StatusSnapshot
    ) -> List[AlertKind]:
        """Compare two consecutive snapshots and fire any edge-triggered alerts."""

        if previous is None:
            return []

        triggered: List[AlertKind] = []
        filename = current.print_info.filename or previous.print_info.filename

        code = current.print_info.status
        previous_code = previous.print_info.status
        if code is not None and previous_code is not None and code != previous_code:
            if code in PAUSED_CODES:
                self.trigger(AlertKind.PRINT_PAUSED, _describe("Print paused", filename))
                triggered.append(AlertKind.PRINT_PAUSED)
            elif code in COMPLETE_CODES:
                self.trigger(
                    AlertKind.PRINT_COMPLETE, _describe("Print complete", filename)
                )
                triggered.append(AlertKind.PRINT_COMPLETE)
            elif code in ERROR_CODES:
                self.trigger(
                    AlertKind.PRINT_ERROR, _describe("Print stopped", filename)
                )
                triggered.append(AlertKind.PRINT_ERROR)

        error = current.print_error
        if error and not previous.print_error and AlertKind.PRINT_ERROR not in triggered:
            self.trigger(AlertKind.PRINT_ERROR, f"Printer reported error code {error}")
            triggered.append(AlertKind.PRINT_ERROR)

        bed = current.temperatures.hotbed
        previous_bed = previous.temperatures.hotbed
        if bed is not None and previous_bed is not None:
            threshold = self._config.cooldown_threshold
            if previous_bed > threshold >= bed:
                self.trigger(
                    AlertKind.BED_COOLED,
                    f"Hotbed cooled to {bed:.1f}°C (threshold {threshold:.1f}°C)",
                )
                triggered.append(AlertKind.BED_COOLED)

            if abs(bed - previous_bed) > self._config.temperature_delta:
                LOGGER.warning(
                    "Hotbed temperature jumped from %.1f°C to %.1f°C",
                    previous_bed,
                    bed,
                )

        return triggered

    # ------------------------------------------------------------------
    # Alert state
    # ------------------------------------------------------------------
    def trigger(self, kind: AlertKind, message: str) -> AlertRecord:
        now = datetime.now(timezone.utc)
        stamped = f"{now.isoformat(timespec='seconds')} {message}"

        record = self._records.get(kind)
        if record is None:
            record = AlertRecord(kind=kind)
            self._records[kind] = record

        record.active = True
        record.last_message = stamped
        record.triggered_at = now
        self._count = self._ensure_count() + 1

        LOGGER.info("Alert %s: %s", kind.value, message)
        self._publish(kind.path, True)
        self._publish(LAST_ALERT_PATH, stamped)
        self._publish(ALERT_COUNT_PATH, self._count)

        timeout_ms = self._config.clear_timeout_ms
        if timeout_ms > 0:
            self._timers.call_later(
                kind.value, timeout_ms / 1000.0, lambda: self._expire(kind)
            )
        return record

    def clear(self, kind: AlertKind) -> None:
        self._timers.cancel(kind.value)
        record = self._records.get(kind)
        if record is None or not record.active:
            return
        record.active = False
        LOGGER.debug("Alert %s cleared", kind.value)
        self._publish(kind.path, False)

    def clear_all(self) -> None:
        for kind in list(self._records):
            self.clear(kind)
        self._timers.cancel_all()

    def shutdown(self) -> None:
        self._timers.cancel_all()

    def _expire(self, kind: AlertKind) -> None:
        LOGGER.debug("Alert %s auto-cleared", kind.value)
        self.clear(kind)

    def _ensure_count(self) -> int:
        if self._count is None:
            stored = self._store.read_last(ALERT_COUNT_PATH)
            try:
                self._count = max(0, int(stored)) if stored is not None else 0
            except (TypeError, ValueError):
                self._count = 0
        return self._count

    def _publish(self, path: str, value: object) -> None:
        try:
            self._store.publish(path, value)
        except Exception:
            LOGGER.exception("Failed to publish %s", path)


def _describe(prefix: str, filename: Optional[str]) -> str:
    if filename:
        return f"{prefix}: {filename}"
    return prefix
