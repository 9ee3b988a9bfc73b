"""Single replaceable status slot for a streaming message."""

from __future__ import annotations

from capstream.schemas.stream import AssistantMessage


class StatusProjector:
    """Every Status frame replaces the slot; nothing is ever appended."""

    def __init__(self, message: AssistantMessage) -> None:
        self.message = message

    @property
    def text(self) -> str:
        return self.message.status_text

    def project(self, text: str) -> bool:
        if not self.message.streaming or not text:
            return False
        self.message.status_text = text
        return True

    def clear(self) -> None:
        self.message.status_text = ""
