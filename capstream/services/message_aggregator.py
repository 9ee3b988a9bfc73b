"""Growth and one-time finalization of a streaming assistant message."""

from __future__ import annotations

from collections.abc import Callable

from capstream.core.logger import get_logger
from capstream.schemas.stream import AssistantMessage
from capstream.services.render_finalize import finalize_for_render
from capstream.services.text_join import DEFAULT_JOIN_RULES, JoinRules, smart_append

logger = get_logger("capstream.aggregator")


class MessageAggregator:
    """Owns the text of one AssistantMessage while it streams.

    The message object is shared with the view state; the aggregator mutates it
    in place and refuses to touch it again once finalized.
    """

    def __init__(
        self,
        message: AssistantMessage | None = None,
        *,
        rules: JoinRules = DEFAULT_JOIN_RULES,
        finalizer: Callable[[str], str] = finalize_for_render,
    ) -> None:
        self.message = message or AssistantMessage()
        self._rules = rules
        self._finalizer = finalizer
        self._finalized = not self.message.streaming

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, fragment: str) -> bool:
        """Join ``fragment`` onto the content. Returns False when the message is closed."""
        if self._finalized:
            logger.warning("Ignoring %d chars for finalized message %s", len(fragment), self.message.id)
            return False
        if fragment:
            self.message.content = smart_append(self.message.content, fragment, self._rules)
        return True

    def finalize(self) -> bool:
        """Close the message. Only the first call has an effect."""
        if self._finalized:
            return False
        self._finalized = True
        self.message.streaming = False
        self.message.status_text = ""
        self.message.content = self._finalizer(self.message.content)
        return True
