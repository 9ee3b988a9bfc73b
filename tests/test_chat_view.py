"""
Unit tests for ChatView: the consumer that applies session frames to the
message list of the conversation on screen.
"""

import asyncio

from capstream.schemas.conversation import ChatEntry
from capstream.schemas.stream import AssistantMessage, TransportResponse
from capstream.services.chat_view import ChatView
from capstream.services.stream_session import SessionState, StreamEngine
from capstream.services.transport import NetworkError

TABLE = '{"result_type": "kv", "data": {"values": [{"pool": "p1", "stake": 5}]}, "metadata": {"title": "Pools"}}'


class Body:
    def __init__(self, chunks, gate=None, fail_at=None):
        self.chunks = list(chunks)
        self.gate = gate
        self.fail_at = fail_at
        self.read = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.read == self.fail_at:
            raise NetworkError("connection dropped")
        if self.read >= len(self.chunks):
            raise StopAsyncIteration
        if self.gate is not None and self.read > 0:
            await self.gate.wait()
        self.read += 1
        return self.chunks[self.read - 1]


def backend(bodies, headers=None, status_code=200):
    """Request function answering each query from ``bodies[query]``."""
    requests = []

    async def send(request):
        requests.append(request)
        return TransportResponse(
            status_code=status_code,
            headers={"X-Conversation-Id": "c1", "X-User-Message-Id": "m1"} if headers is None else headers,
            chunks=bodies.get(request.body.query),
        )

    send.requests = requests
    return send


def assistant(view):
    return [m for m in view.messages if isinstance(m, AssistantMessage)]


def entries(view, kind):
    return [m for m in view.messages if isinstance(m, ChatEntry) and m.kind == kind]


class TestSubmit:
    def test_new_conversation(self) -> None:
        """Test a first query creates the conversation and fills the message list."""
        body = Body(["status: Running query\n", "data:Found\ndata:2 pools.\n", f"kv_results:{TABLE}_kv_results_end_\n", "[DONE]\n"])
        send = backend({"Top pools": body})

        async def scenario():
            view = ChatView(StreamEngine(send), query_url="/q")
            session = view.submit("  Top pools ")
            return view, await session.wait()

        view, state = asyncio.run(scenario())
        assert state == SessionState.COMPLETED
        assert view.shown_conversation_id == "c1"
        assert send.requests[0].body.conversation_id is None

        user = entries(view, "user")[0]
        assert user.content == "Top pools"
        assert user.server_id == "m1"

        (message,) = assistant(view)
        assert message.content == "Found 2 pools."
        assert message.streaming is False
        assert message.status_text == ""

        (artifact,) = entries(view, "artifact")
        assert artifact.artifact.kind == "table"
        assert artifact.artifact.title == "Pools"

    def test_follow_up_uses_shown_conversation(self) -> None:
        """Test a follow-up query is sent with the shown conversation id."""
        send = backend({"a": Body(["[DONE]\n"]), "b": Body(["[DONE]\n"])})

        async def scenario():
            view = ChatView(StreamEngine(send), query_url="/q")
            await view.submit("a").wait()
            await view.submit("b").wait()

        asyncio.run(scenario())
        assert [r.body.conversation_id for r in send.requests] == [None, "c1"]

    def test_empty_query_is_ignored(self) -> None:
        """Test a blank query starts nothing."""
        view = ChatView(StreamEngine(backend({})), query_url="/q")
        assert view.submit("   ") is None
        assert view.messages == []

    def test_status_shows_while_streaming(self) -> None:
        """Test the status slot shows while streaming and clears at the end."""
        async def scenario():
            gate = asyncio.Event()
            body = Body(["status: Planning\n", "data:x\n"], gate=gate)
            view = ChatView(StreamEngine(backend({"q": body})), query_url="/q")
            session = view.submit("q")
            while body.read < 1:
                await asyncio.sleep(0)
            snapshot = (assistant(view)[0].status_text, view.streaming)
            gate.set()
            await session.wait()
            return snapshot, view

        (status, streaming), view = asyncio.run(scenario())
        assert status == "Planning"
        assert streaming is True
        assert assistant(view)[0].status_text == ""
        assert view.streaming is False


class TestBinding:
    def test_navigation_drops_frames(self) -> None:
        """Test frames for a conversation that is no longer shown are dropped."""
        async def scenario():
            gate = asyncio.Event()
            body = Body(["data:one\n", "data:two\n", "[DONE]\n"], gate=gate)
            view = ChatView(StreamEngine(backend({"q": body})), query_url="/q")
            session = view.submit("q")
            while body.read < 1:
                await asyncio.sleep(0)
            message = assistant(view)[0]
            view.navigate("c2", messages=[])
            gate.set()
            await session.wait()
            return view, message, session

        view, message, session = asyncio.run(scenario())
        assert session.state == SessionState.COMPLETED
        assert view.messages == []
        assert view.shown_conversation_id == "c2"
        assert message.content == "one"

    def test_navigate_back_resumes(self) -> None:
        """Test frames resume once the view navigates back to the bound conversation."""
        async def scenario():
            gate = asyncio.Event()
            body = Body(["data:one\n", "data:two\n", "[DONE]\n"], gate=gate)
            view = ChatView(StreamEngine(backend({"q": body})), query_url="/q")
            view.navigate("c1")
            session = view.submit("q")
            while body.read < 1:
                await asyncio.sleep(0)
            kept = list(view.messages)
            view.navigate("c2")
            view.navigate("c1", messages=kept)
            gate.set()
            await session.wait()
            return view

        view = asyncio.run(scenario())
        assert assistant(view)[0].content == "one two"
        assert assistant(view)[0].streaming is False


class TestErrorsAndStop:
    def test_http_error_adds_error_entry(self) -> None:
        """Test an HTTP error adds one error entry."""
        send = backend({}, status_code=500)

        async def scenario():
            view = ChatView(StreamEngine(send), query_url="/q")
            await view.submit("q").wait()
            return view

        view = asyncio.run(scenario())
        assert assistant(view) == []
        (error,) = entries(view, "error")
        assert error.content == "Error: HTTP 500. Please try again."

    def test_failure_finalizes_partial_message(self) -> None:
        """Test a failure mid-stream keeps and finalizes the partial answer."""
        send = backend({"q": Body(["status: Working\n", "data:partial\n"], fail_at=2)})

        async def scenario():
            view = ChatView(StreamEngine(send), query_url="/q")
            await view.submit("q").wait()
            return view

        view = asyncio.run(scenario())
        (message,) = assistant(view)
        assert message.content == "partial"
        assert message.streaming is False
        assert message.status_text == ""
        assert entries(view, "error")[0].content == "Error: connection dropped. Please try again."

    def test_malformed_block_is_recorded(self) -> None:
        """Test a malformed result block is recorded without ending the turn."""
        send = backend({"q": Body(["kv_results:{nope_kv_results_end_\n", "data:ok\n"])})

        async def scenario():
            view = ChatView(StreamEngine(send), query_url="/q")
            await view.submit("q").wait()
            return view

        view = asyncio.run(scenario())
        assert len(view.block_errors) == 1
        assert assistant(view)[0].content == "ok"
        assert entries(view, "artifact") == []

    def test_stop_finalizes_and_silences(self) -> None:
        """Test stop finalizes the message and silences the session."""
        async def scenario():
            gate = asyncio.Event()
            body = Body(["data:one\n", "data:two\n"], gate=gate)
            view = ChatView(StreamEngine(backend({"q": body})), query_url="/q")
            session = view.submit("q")
            while body.read < 1:
                await asyncio.sleep(0)
            stopped = view.stop()
            gate.set()
            await session.wait()
            return view, stopped, session

        view, stopped, session = asyncio.run(scenario())
        assert stopped is True
        assert session.state == SessionState.CANCELLED
        (message,) = assistant(view)
        assert message.content == "one"
        assert message.streaming is False
        assert entries(view, "error") == []
