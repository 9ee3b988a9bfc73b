"""Explicit publish/subscribe channel for cross-component notices.

The bus is owned by whoever builds the StreamEngine and handed to the
collaborators that care (sidebar index, terminal renderer, tests).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from capstream.core.logger import get_logger

logger = get_logger("capstream.events")

Listener = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a function that removes it again."""
        self._listeners[topic].append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners[topic].remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        # Listener failures are logged and do not reach the publisher.
        for listener in list(self._listeners.get(topic, ())):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s failed", topic)

    def listener_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, ()))
