"""Very small event bus for inter-module communication."""

from collections import defaultdict
from collections.abc import Callable

from utils.log_utils import tprint

# Wildcard subscribers receive (topic, payload); topic subscribers receive payload.
ANY_TOPIC = "*"


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Callable) -> None:
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Callable) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, payload: dict | None = None) -> None:
        event = payload or {}
        for handler in list(self._subscribers.get(topic, [])):
            self._deliver(topic, handler, event)
        for handler in list(self._subscribers.get(ANY_TOPIC, [])):
            self._deliver(topic, handler, topic, event)

    def _deliver(self, topic: str, handler: Callable, *args) -> None:
        try:
            handler(*args)
        except Exception as exc:
            tprint(f"[EVENT_BUS][WARN] handler for '{topic}' failed: {exc}")
