"""
Conversation view state driven by a StreamEngine.

ChatView keeps the message list of the conversation on screen. Each submitted
query becomes a turn: a StreamSession plus the binding guard, aggregator and
status projector that apply its frames to the list. Frames of a turn are
dropped as soon as the view shows another conversation.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional, Union

from capstream.core.logger import get_logger
from capstream.schemas.conversation import ChatEntry
from capstream.schemas.stream import (
    AssistantMessage,
    QueryBody,
    ResultPayload,
    StreamMetadata,
    StreamRequest,
)
from capstream.services.artifacts import Artifact, payload_to_artifact
from capstream.services.binding_guard import ConversationBindingGuard
from capstream.services.message_aggregator import MessageAggregator
from capstream.services.result_block import ResultBlockError
from capstream.services.status_projector import StatusProjector
from capstream.services.stream_session import StreamEngine, StreamHandlers, StreamSession

logger = get_logger("capstream.chat_view")

ViewMessage = Union[ChatEntry, AssistantMessage]
ArtifactMapper = Callable[[ResultPayload], Optional[Artifact]]


class StreamTurn:
    """Applies the frames of one session to the view, if the guard allows it."""

    def __init__(self, view: "ChatView", guard: ConversationBindingGuard, user_entry: ChatEntry) -> None:
        self.view = view
        self.guard = guard
        self.user_entry = user_entry
        self.aggregator: MessageAggregator | None = None
        self.projector: StatusProjector | None = None

    @property
    def message(self) -> AssistantMessage | None:
        return self.aggregator.message if self.aggregator else None

    def handlers(self) -> StreamHandlers:
        return StreamHandlers(
            on_status=self.on_status,
            on_chunk=self.on_chunk,
            on_kv_results=self.on_kv_results,
            on_metadata=self.on_metadata,
            on_done=self.on_done,
            on_error=self.on_error,
            on_block_error=self.on_block_error,
        )

    def _ensure_message(self) -> MessageAggregator:
        if self.aggregator is None:
            message = AssistantMessage()
            self.view.messages.append(message)
            self.aggregator = MessageAggregator(message, rules=self.view.engine.config.join_rules)
            self.projector = StatusProjector(message)
        return self.aggregator

    def on_status(self, text: str) -> None:
        if not self.guard.allows():
            return
        self._ensure_message()
        self.projector.project(text)

    def on_chunk(self, text: str) -> None:
        if not self.guard.allows():
            return
        self._ensure_message().append(text)

    def on_kv_results(self, payload: ResultPayload) -> None:
        if not self.guard.allows():
            return
        artifact = self.view.to_artifact(payload)
        if artifact is None:
            logger.info("No artifact for result_type=%s", payload.result_type)
            return
        self.view.messages.append(
            ChatEntry(role="assistant", kind="artifact", content=artifact.title, artifact=artifact)
        )

    def on_block_error(self, error: ResultBlockError) -> None:
        self.view.block_errors.append(error.message)

    def on_metadata(self, meta: StreamMetadata) -> None:
        if meta.user_message_id and self.user_entry.server_id is None:
            self.user_entry.server_id = meta.user_message_id
        if meta.conversation_id is None:
            return
        adopt = self.guard.target is None and self.view.shown_conversation_id is None
        self.guard.bind(meta.conversation_id)
        if adopt:
            self.view.shown_conversation_id = self.guard.target

    def on_done(self, meta: StreamMetadata) -> None:
        self.close()

    def on_error(self, error: Exception) -> None:
        if not self.guard.allows():
            return
        self.close()
        reason = getattr(error, "message", None) or str(error) or type(error).__name__
        self.view.messages.append(
            ChatEntry(role="system", kind="error", content=f"Error: {reason}. Please try again.")
        )

    def close(self) -> None:
        """Finalize the streaming message once, if it is still on screen."""
        if self.aggregator is None or not self.guard.allows():
            return
        self.aggregator.finalize()


class ChatView:
    """Message list of the conversation on screen plus the running turn.

    Usage (inside a running event loop):
        view = ChatView(engine, query_url="/api/v1/nl/query")
        session = view.submit("Top stake pools by active stake")
        await session.wait()
        view.messages[-1].content
    """

    def __init__(
        self,
        engine: StreamEngine,
        *,
        query_url: str,
        headers: Optional[dict[str, str]] = None,
        to_artifact: ArtifactMapper = payload_to_artifact,
    ) -> None:
        self.engine = engine
        self.query_url = query_url
        self.headers = dict(headers or {})
        self.to_artifact = to_artifact
        self.shown_conversation_id: str | None = None
        self.messages: list[ViewMessage] = []
        self.block_errors: list[str] = []
        self.turn: StreamTurn | None = None

    @property
    def streaming(self) -> bool:
        session = self.engine.current
        return session is not None and not session.terminal

    def navigate(self, conversation_id: str | None, messages: Optional[list[ViewMessage]] = None) -> None:
        """Show another conversation. A running stream keeps going but stops touching the view."""
        self.shown_conversation_id = conversation_id
        self.messages = list(messages or [])

    def submit(self, query: str) -> StreamSession | None:
        text = query.strip()
        if not text:
            return None

        self._close_turn()
        user_entry = ChatEntry(role="user", kind="user", content=text)
        self.messages.append(user_entry)

        request = StreamRequest(
            url=self.query_url,
            headers=self.headers,
            body=QueryBody(query=text, conversation_id=self.shown_conversation_id),
        )
        guard = ConversationBindingGuard(
            lambda: self.shown_conversation_id,
            started_conversation_id=self.shown_conversation_id,
        )
        self.turn = StreamTurn(self, guard, user_entry)
        return self.engine.start(request, self.turn.handlers())

    def stop(self) -> bool:
        stopped = self.engine.stop()
        self._close_turn()
        return stopped

    def _close_turn(self) -> None:
        if self.turn is not None:
            self.turn.close()
            self.turn = None
