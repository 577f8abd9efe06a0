"""Fire-and-forget status and error events for the surrounding UI."""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any

from utils.event_bus import EventBus
from utils.log_utils import tprint

STATUS_TOPIC = "queue.status"
ERROR_TOPIC = "queue.error"


class NotificationSink:
    """Publishes runner events on an EventBus and keeps the most recent ones."""

    def __init__(self, bus: EventBus | None = None, history: int = 200) -> None:
        self.bus = bus or EventBus()
        self._recent: deque[dict[str, Any]] = deque(maxlen=history)
        self._lock = threading.Lock()
        self._seq = 0

    def _emit(self, topic: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._seq += 1
            event = {"seq": self._seq, "topic": topic, "ts": time.time(), **payload}
            self._recent.append(event)
        self.bus.publish(topic, event)

    def status(self, status: str, message: str, **extra: Any) -> None:
        tprint(f"[RUNNER] {status}: {message}")
        self._emit(STATUS_TOPIC, {"status": status, "message": message, **extra})

    def error(self, message: str, **extra: Any) -> None:
        tprint(f"[RUNNER][ERROR] {message}")
        self._emit(ERROR_TOPIC, {"message": message, **extra})

    def recent(self, since: int = 0) -> list[dict[str, Any]]:
        with self._lock:
            return [event for event in self._recent if event["seq"] > since]
