"""
Stream sessions and the single-owner engine.

A StreamSession owns one request/response exchange:

    IDLE -> STARTING -> STREAMING -> COMPLETED | CANCELLED | FAILED

It awaits the injected request function, reads the metadata headers before the
body, drives the frame decoder over the body and routes frames to its handlers.
The StreamEngine owns at most one session; starting another one cancels the
current session, which is disconnected from its handlers on the spot.

Handlers are plain callables and errors only ever reach the caller through
``on_error``: nothing raised inside a session escapes ``StreamEngine.start``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from capstream.core.logger import get_logger
from capstream.core.stream_config import StreamConfig
from capstream.schemas.conversation import (
    CONVERSATION_CREATED,
    CONVERSATION_TOUCHED,
    STREAM_END,
    STREAM_START,
    ConversationCreated,
    ConversationTouched,
    StreamBoundary,
)
from capstream.schemas.frames import (
    Done,
    Frame,
    RawLine,
    ResultBlockChunk,
    ResultBlockEnd,
    Status,
    TextDelta,
)
from capstream.schemas.stream import (
    ResultPayload,
    SendFn,
    StreamMetadata,
    StreamRequest,
    TransportResponse,
)
from capstream.services.event_bus import EventBus
from capstream.services.frame_decoder import TransportFrameDecoder
from capstream.services.result_block import ResultBlockAssembler, ResultBlockError
from capstream.services.transport import HTTPStatusError

logger = get_logger("capstream.session")

DEFAULT_TITLE = "New conversation"


class SessionState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED})


@dataclass
class StreamHandlers:
    """Callbacks a session reports to. Every one is optional."""

    on_status: Optional[Callable[[str], None]] = None
    on_chunk: Optional[Callable[[str], None]] = None
    on_kv_results: Optional[Callable[[ResultPayload], None]] = None
    on_metadata: Optional[Callable[[StreamMetadata], None]] = None
    on_done: Optional[Callable[[StreamMetadata], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_block_error: Optional[Callable[[ResultBlockError], None]] = None


def derive_title(query: str, max_chars: int) -> str:
    title = " ".join(query.split())
    return title[:max_chars] if title else DEFAULT_TITLE


class StreamSession:
    """One logical streaming exchange, from issue to terminal state."""

    def __init__(
        self,
        request: StreamRequest,
        send: SendFn,
        handlers: Optional[StreamHandlers] = None,
        *,
        config: Optional[StreamConfig] = None,
        events: Optional[EventBus] = None,
        owner_check: Optional[Callable[["StreamSession"], bool]] = None,
    ) -> None:
        self.request = request
        self.request_id = request.request_id
        self.started_conversation_id: str | None = request.conversation_id
        self.resolved_conversation_id: str | None = None
        self.user_message_id: str | None = None
        self.state = SessionState.IDLE
        self.handlers = handlers or StreamHandlers()

        self._send = send
        self._config = config or StreamConfig()
        self._events = events
        self._owner_check = owner_check
        self._decoder = TransportFrameDecoder()
        self._assembler = ResultBlockAssembler()
        self._response: TransportResponse | None = None
        self._task: asyncio.Task | None = None
        self._silenced = False
        self._created_notified = False

    def __repr__(self) -> str:
        return f"<StreamSession {self.request_id} {self.state.value}>"

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def conversation_id(self) -> str | None:
        return self.resolved_conversation_id or self.started_conversation_id

    @property
    def metadata(self) -> StreamMetadata:
        return StreamMetadata(conversation_id=self.conversation_id, user_message_id=self.user_message_id)

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self) -> asyncio.Task:
        """Schedule ``run`` on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run(), name=f"stream-{self.request_id}")
        return self._task

    def cancel(self) -> bool:
        """Abort the exchange. Silent: no handler fires afterwards, on_error included."""
        if self.terminal:
            return False
        self._silenced = True
        self._set_state(SessionState.CANCELLED)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    async def wait(self) -> SessionState:
        """Wait for the read task to finish, whatever the outcome."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        return self.state

    # ------------------------------------------------------------------
    # Read loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        self._set_state(SessionState.STARTING)
        try:
            response = await self._send(self.request)
        except asyncio.CancelledError:
            self._mark_cancelled()
            raise
        except Exception as e:
            self._fail(e)
            return

        self._response = response
        try:
            if self.terminal:
                return
            if not response.ok:
                self._fail(
                    HTTPStatusError(f"HTTP {response.status_code}", status_code=response.status_code)
                )
                return

            self._read_metadata(response)
            self._set_state(SessionState.STREAMING)

            if response.chunks is None:
                if response.text:
                    self._dispatch(TextDelta(response.text))
                self._complete()
                return

            async for chunk in response.chunks:
                for frame in self._decoder.feed(chunk):
                    self._dispatch(frame)
                    if self.terminal:
                        break
                if self.terminal:
                    break
            else:
                for frame in self._decoder.close():
                    self._dispatch(frame)
                    if self.terminal:
                        break

            self._complete()
        except asyncio.CancelledError:
            self._mark_cancelled()
            raise
        except Exception as e:
            self._fail(e)
        finally:
            self._assembler.reset()
            await self._close_response()

    def _dispatch(self, frame: Frame) -> None:
        if self.terminal:
            return
        if isinstance(frame, Status):
            self._emit("on_status", frame.text)
        elif isinstance(frame, TextDelta):
            self._emit("on_chunk", frame.text)
        elif isinstance(frame, ResultBlockChunk):
            self._assembler.append(frame.text)
        elif isinstance(frame, ResultBlockEnd):
            self._finish_block()
        elif isinstance(frame, Done):
            self._complete()
        elif isinstance(frame, RawLine):
            logger.debug("Session %s skipped field line %r", self.request_id, frame.text[:80])

    def _finish_block(self) -> None:
        try:
            payload = self._assembler.finish()
        except ResultBlockError as e:
            logger.warning("Session %s dropped a result block: %s", self.request_id, e.message)
            self._emit("on_block_error", e)
            return
        self._emit("on_kv_results", payload)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def _read_metadata(self, response: TransportResponse) -> None:
        conversation_id = response.header(self._config.conversation_header)
        user_message_id = response.header(self._config.user_message_header)
        if conversation_id is None and user_message_id is None:
            logger.debug("Session %s: no metadata headers", self.request_id)
            return
        if user_message_id is not None:
            self.user_message_id = user_message_id
        if conversation_id is not None:
            self.resolve_conversation(conversation_id)
        self._emit("on_metadata", self.metadata)

    def resolve_conversation(self, conversation_id: str) -> bool:
        """Set the resolved conversation id. Write-once: later values are ignored."""
        if self.resolved_conversation_id is not None:
            if conversation_id != self.resolved_conversation_id:
                logger.warning(
                    "Session %s already bound to %s, ignoring %s",
                    self.request_id,
                    self.resolved_conversation_id,
                    conversation_id,
                )
            return False

        self.resolved_conversation_id = conversation_id
        if self.started_conversation_id is None and not self._created_notified:
            self._created_notified = True
            self._notify(
                CONVERSATION_CREATED,
                ConversationCreated(
                    id=conversation_id,
                    title=derive_title(self.request.body.query, self._config.title_max_chars),
                ),
            )
        return True

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def _complete(self) -> None:
        if self.terminal:
            return
        self._set_state(SessionState.COMPLETED)
        self._emit("on_done", self.metadata)
        if self.conversation_id is not None:
            self._notify(CONVERSATION_TOUCHED, ConversationTouched(id=self.conversation_id))
        self._notify(STREAM_END, StreamBoundary(conversation_id=self.conversation_id))

    def _fail(self, error: Exception) -> None:
        if self.terminal:
            if not self._silenced:
                logger.error("Session %s: error after %s: %s", self.request_id, self.state.value, error)
            return
        self._set_state(SessionState.FAILED)
        logger.warning("Session %s failed: %s: %s", self.request_id, type(error).__name__, error)
        try:
            self._emit("on_error", error)
        except Exception:
            logger.exception("on_error handler of session %s raised", self.request_id)
        self._notify(STREAM_END, StreamBoundary(conversation_id=self.conversation_id))

    def _mark_cancelled(self) -> None:
        self._silenced = True
        if not self.terminal:
            self._set_state(SessionState.CANCELLED)

    async def _close_response(self) -> None:
        response = self._response
        if response is None:
            return
        self._response = None
        aclose_chunks = getattr(response.chunks, "aclose", None)
        try:
            if aclose_chunks is not None:
                await aclose_chunks()
            await response.aclose()
        except Exception as e:
            logger.debug("Session %s: closing response failed: %s", self.request_id, e)

    # ------------------------------------------------------------------
    # Callback gate
    # ------------------------------------------------------------------

    def _live(self) -> bool:
        if self._silenced:
            return False
        return self._owner_check is None or self._owner_check(self)

    def _emit(self, name: str, *args: Any) -> None:
        handler = getattr(self.handlers, name)
        if handler is None or not self._live():
            return
        handler(*args)

    def _notify(self, topic: str, payload: Any) -> None:
        if self._events is None or not self._live():
            return
        self._events.publish(topic, payload)

    def _set_state(self, state: SessionState) -> None:
        logger.debug("Session %s: %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state


class StreamEngine:
    """Owns at most one StreamSession at a time.

    Usage (inside a running event loop):
        engine = StreamEngine(transport.send, events=bus)
        session = engine.start(request, StreamHandlers(on_chunk=print))
        await session.wait()
    """

    def __init__(
        self,
        send: SendFn,
        *,
        config: Optional[StreamConfig] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self._send = send
        self.config = config or StreamConfig()
        self.events = events if events is not None else EventBus()
        self._current: StreamSession | None = None

    @property
    def current(self) -> StreamSession | None:
        return self._current

    def owns(self, session: StreamSession) -> bool:
        return self._current is session

    def start(self, request: StreamRequest, handlers: Optional[StreamHandlers] = None) -> StreamSession:
        """Supersede the owned session (if any) and start streaming ``request``."""
        previous = self._current
        session = StreamSession(
            request,
            self._send,
            handlers,
            config=self.config,
            events=self.events,
            owner_check=self.owns,
        )
        self._current = session
        if previous is not None:
            self._abort(previous, reason="superseded")

        self.events.publish(STREAM_START, StreamBoundary(conversation_id=session.started_conversation_id))
        session.start()
        return session

    def stop(self) -> bool:
        """Abort the owned session. Returns False when nothing was streaming."""
        session = self._current
        self._current = None
        if session is None:
            return False
        return self._abort(session, reason="stopped")

    def _abort(self, session: StreamSession, reason: str) -> bool:
        if not session.cancel():
            return False
        logger.info("Session %s %s", session.request_id, reason)
        self.events.publish(STREAM_END, StreamBoundary(conversation_id=session.conversation_id))
        return True
