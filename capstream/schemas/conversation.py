from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

CONVERSATION_CREATED = "conversation-created"
CONVERSATION_TOUCHED = "conversation-touched"
STREAM_START = "stream-start"
STREAM_END = "stream-end"


def now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ConversationCreated(BaseModel):
    id: str
    title: str
    created_at: str = Field(default_factory=now_utc)
    updated_at: str = Field(default_factory=now_utc)
    just_created: bool = True


class ConversationTouched(BaseModel):
    id: str
    updated_at: str = Field(default_factory=now_utc)


class StreamBoundary(BaseModel):
    conversation_id: str | None = None


class ConversationSummary(BaseModel):
    """Sidebar entry kept by ConversationIndex."""

    id: str
    title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    just_created: bool = False
    local_updated_at: float = 0.0


class ChatEntry(BaseModel):
    """Non-streaming message in a conversation view (user turn, artifact, error)."""

    id: str = Field(default_factory=lambda: f"entry_{uuid.uuid4().hex[:12]}")
    role: Literal["user", "assistant", "system"]
    kind: Literal["user", "artifact", "error"]
    content: str = ""
    server_id: str | None = None
    artifact: Any = None
