"""In-process state store."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

PublishListener = Callable[[str, Any, bool], None]


class MemoryStateStore:
    """Keeps the last value per path and a history of publishes.

    Used as the ``memory`` backend for dry runs without a broker.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})
        self.history: List[Tuple[str, Any, bool]] = []
        self._listeners: List[PublishListener] = []

    def publish(self, path: str, value: Any, *, ack: bool = True) -> None:
        self._values[path] = value
        self.history.append((path, value, ack))
        LOGGER.debug("state %s = %r (ack=%s)", path, value, ack)
        for listener in list(self._listeners):
            listener(path, value, ack)

    def read_last(self, path: str) -> Optional[Any]:
        return self._values.get(path)

    def add_listener(self, listener: PublishListener) -> None:
        self._listeners.append(listener)

    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    def published(self, path: str) -> List[Any]:
        return [value for entry_path, value, _ in self.history if entry_path == path]
