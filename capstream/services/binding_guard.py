"""Decides whether frames of a session may mutate the conversation on screen."""

from __future__ import annotations

from collections.abc import Callable


def _norm(conversation_id: object) -> str | None:
    if conversation_id is None:
        return None
    value = str(conversation_id).strip()
    return value or None


class ConversationBindingGuard:
    """Binds a session to one conversation and checks the view on every frame.

    The target is the resolved conversation id once the response disclosed it,
    otherwise the conversation that was shown when the session started. The
    shown conversation is read through ``get_shown`` each time, never cached,
    because the user can navigate while the stream is running.
    """

    def __init__(self, get_shown: Callable[[], object], started_conversation_id: object = None) -> None:
        self._get_shown = get_shown
        self._started = _norm(started_conversation_id)
        self._resolved: str | None = None

    @property
    def target(self) -> str | None:
        return self._resolved if self._resolved is not None else self._started

    def bind(self, resolved_conversation_id: object) -> bool:
        """Adopt the id disclosed by the response. The first non-empty id wins."""
        value = _norm(resolved_conversation_id)
        if value is None or self._resolved is not None:
            return False
        self._resolved = value
        return True

    def allows(self) -> bool:
        shown = _norm(self._get_shown())
        target = self.target
        if target is None:
            return shown is None
        return shown == target
