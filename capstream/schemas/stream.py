from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueryBody(BaseModel):
    query: str
    conversation_id: str | None = None


class StreamRequest(BaseModel):
    url: str
    method: Literal["POST", "GET"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: QueryBody
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def conversation_id(self) -> str | None:
        return self.body.conversation_id


class StreamMetadata(BaseModel):
    conversation_id: str | None = None
    user_message_id: str | None = None


class ResultPayload(BaseModel):
    """Parsed result block. ``result_type`` is mandatory, everything else is kept as-is."""

    model_config = ConfigDict(extra="allow")

    result_type: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class AssistantMessage(BaseModel):
    id: str = Field(default_factory=lambda: f"assistant_{uuid.uuid4().hex[:12]}")
    role: Literal["assistant"] = "assistant"
    content: str = ""
    streaming: bool = True
    status_text: str = ""


@dataclass
class TransportResponse:
    """What the injected request function hands back to a session.

    ``chunks`` is None when the backend did not answer with a readable stream;
    ``text`` then carries the full body.
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    chunks: Optional[AsyncIterator[str]] = None
    text: str = ""
    close: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        value = self.headers.get(name)
        if value is None:
            lowered = name.lower()
            for key, candidate in self.headers.items():
                if key.lower() == lowered:
                    value = candidate
                    break
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    async def aclose(self) -> None:
        if self.close is not None:
            await self.close()


SendFn = Callable[[StreamRequest], Awaitable[TransportResponse]]
