"""Synchronous broadcast of death-check events to in-process observers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from libs.core.log_events import log_event

CYCLE_COMPLETED = "cycle_completed"
NEW_DECEASED_DETECTED = "new_deceased_detected"

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Any], None]


class EventBus:
    """Fan-out of named events; a failing handler never reaches the publisher."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: str, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(event, payload)
            except Exception as error:  # noqa: BLE001
                log_event(
                    logger,
                    "event_handler_failed",
                    {"target_event": event, "error": str(error)},
                    level=logging.WARNING,
                )
