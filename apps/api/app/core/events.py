from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.context import get_correlation_id


logger = logging.getLogger("app.events")


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]
    correlation_id: str | None = None


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out of domain events to in-process subscribers.

    Events are published after the producing transaction has committed, so a
    failing subscriber is logged and skipped rather than propagated.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[event_name]:
            self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> InternalEvent:
        event = InternalEvent(name=event_name, payload=payload, correlation_id=get_correlation_id())
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                handler(event)
            except Exception as exc:
                logger.exception("event.handler_failed", extra={"event_name": event_name, "error": str(exc)})
        return event


event_bus = InProcessEventBus()
