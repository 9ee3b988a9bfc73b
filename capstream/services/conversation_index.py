"""
Recency-ordered conversation list (the sidebar collaborator).

Listens to ``conversation-created`` and ``conversation-touched`` notices:
- created: inserts the conversation with ``just_created`` set (typing animation)
- touched: only bumps recency; title and other fields stay as they are
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from capstream.schemas.conversation import (
    CONVERSATION_CREATED,
    CONVERSATION_TOUCHED,
    ConversationCreated,
    ConversationSummary,
    ConversationTouched,
)
from capstream.services.event_bus import EventBus


def _parse_ts(value: str | None) -> float:
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


class ConversationIndex:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._items: dict[str, ConversationSummary] = {}
        self._clock = clock
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> None:
        self._unsubscribers.append(bus.subscribe(CONVERSATION_CREATED, self.on_created))
        self._unsubscribers.append(bus.subscribe(CONVERSATION_TOUCHED, self.on_touched))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def upsert(self, incoming: dict[str, Any]) -> ConversationSummary:
        """Merge ``incoming`` into the stored entry; keys absent or None keep the old value."""
        conversation_id = str(incoming["id"])
        existing = self._items.get(conversation_id)
        if existing is None:
            entry = ConversationSummary.model_validate({**incoming, "id": conversation_id})
        else:
            patch = {k: v for k, v in incoming.items() if v is not None and k != "id"}
            entry = existing.model_copy(update=patch)
        self._items[conversation_id] = entry
        return entry

    def on_created(self, event: ConversationCreated) -> None:
        self.upsert(
            {
                "id": event.id,
                "title": event.title,
                "created_at": event.created_at,
                "updated_at": event.updated_at,
                "just_created": event.just_created,
                "local_updated_at": self._clock(),
            }
        )

    def on_touched(self, event: ConversationTouched) -> None:
        self.upsert(
            {
                "id": event.id,
                "updated_at": event.updated_at,
                "local_updated_at": self._clock(),
            }
        )

    def clear_just_created(self, conversation_id: str) -> None:
        entry = self._items.get(str(conversation_id))
        if entry is not None and entry.just_created:
            self._items[entry.id] = entry.model_copy(update={"just_created": False})

    def remove(self, conversation_id: str) -> None:
        self._items.pop(str(conversation_id), None)

    def get(self, conversation_id: str) -> ConversationSummary | None:
        return self._items.get(str(conversation_id))

    def ordered(self) -> list[ConversationSummary]:
        def key(item: ConversationSummary) -> tuple[float, float]:
            server_ts = _parse_ts(item.updated_at) or _parse_ts(item.created_at)
            return (item.local_updated_at, server_ts)

        return sorted(self._items.values(), key=key, reverse=True)

    def __len__(self) -> int:
        return len(self._items)
