"""Stream end-to-end acceptance checks (no manual inspection required).

Runs the StreamEngine and ChatView against an in-process FastAPI backend
(httpx.ASGITransport) and asserts for:
- new conversation: status, text, result block, created notice, adoption
- continued conversation: touched notice, no second created notice
- malformed result block: dropped, stream continues
- HTTP 500: one error entry, no assistant text
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

# Ensure repository root is importable when running as script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from capstream.schemas.conversation import (
    CONVERSATION_CREATED,
    CONVERSATION_TOUCHED,
    ChatEntry,
)
from capstream.schemas.stream import AssistantMessage
from capstream.services.chat_view import ChatView
from capstream.services.conversation_index import ConversationIndex
from capstream.services.stream_session import SessionState, StreamEngine
from capstream.services.transport import HttpxStreamTransport

QUERY_PATH = "/api/v1/nl/query"

TABLE_BLOCK = {
    "result_type": "kv_table",
    "data": {"values": [{"pool": "pool1abc", "stake": 1200}, {"pool": "pool1def", "stake": 900}]},
    "metadata": {"columns": ["pool", "stake"], "title": "Top pools"},
}


def _body_lines(query: str) -> list[str]:
    if "malformed" in query:
        return [
            "status: Running query",
            "kv_results:{not json at all",
            "_kv_results_end_",
            "data:Still",
            "data:here",
            "[DONE]",
        ]
    table = json.dumps(TABLE_BLOCK, indent=2).split("\n")
    return [
        "status: Planning",
        "status: Running query",
        "data:Block",
        "data:1",
        "data:234",
        "kv_results:" + table[0],
        *table[1:],
        "_kv_results_end_",
        "data:pools listed.",
        "data: [DONE]",
    ]


def create_app() -> FastAPI:
    app = FastAPI()
    counter = {"n": 0}

    @app.post(QUERY_PATH)
    async def query(request: Request):
        body = await request.json()
        text = str(body.get("query") or "")
        if "explode" in text:
            return JSONResponse({"detail": "backend failure"}, status_code=500)

        counter["n"] += 1
        conversation_id = body.get("conversation_id") or f"conv-{counter['n']}"

        async def stream():
            for line in _body_lines(text):
                yield line + "\n"

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={
                "X-Conversation-Id": conversation_id,
                "X-User-Message-Id": f"msg-{counter['n']}",
            },
        )

    return app


def _assistant(view: ChatView) -> AssistantMessage:
    messages = [m for m in view.messages if isinstance(m, AssistantMessage)]
    assert messages, "missing assistant message"
    return messages[-1]


def _entries(view: ChatView, kind: str) -> list[ChatEntry]:
    return [m for m in view.messages if isinstance(m, ChatEntry) and m.kind == kind]


async def run_checks() -> None:
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()), base_url="http://testserver")
    transport = HttpxStreamTransport(base_url="http://testserver", client=client)
    engine = StreamEngine(transport.send)
    index = ConversationIndex()
    index.attach(engine.events)
    notices: list[tuple[str, Any]] = []
    engine.events.subscribe(CONVERSATION_CREATED, lambda e: notices.append((CONVERSATION_CREATED, e)))
    engine.events.subscribe(CONVERSATION_TOUCHED, lambda e: notices.append((CONVERSATION_TOUCHED, e)))
    view = ChatView(engine, query_url=QUERY_PATH)

    # 1) new conversation
    session = view.submit("Top stake pools")
    assert await session.wait() == SessionState.COMPLETED, session.state
    message = _assistant(view)
    assert message.content == "Block 1 234 pools listed.", repr(message.content)
    assert not message.streaming and message.status_text == ""
    artifacts = _entries(view, "artifact")
    assert len(artifacts) == 1 and artifacts[0].artifact.title == "Top pools"
    assert view.shown_conversation_id == "conv-1", view.shown_conversation_id
    assert _entries(view, "user")[0].server_id == "msg-1"
    created = [e for topic, e in notices if topic == CONVERSATION_CREATED]
    assert [e.id for e in created] == ["conv-1"] and created[0].title == "Top stake pools"
    assert index.get("conv-1") is not None and index.get("conv-1").just_created

    # 2) continued conversation
    notices.clear()
    session = view.submit("And the next ones?")
    assert await session.wait() == SessionState.COMPLETED
    assert [topic for topic, _ in notices] == [CONVERSATION_TOUCHED], notices

    # 3) malformed result block
    session = view.submit("malformed please")
    assert await session.wait() == SessionState.COMPLETED
    assert _assistant(view).content == "Still here", repr(_assistant(view).content)
    assert view.block_errors, "malformed block was not reported"

    # 4) server error
    before = len(_entries(view, "error"))
    session = view.submit("explode")
    assert await session.wait() == SessionState.FAILED
    errors = _entries(view, "error")
    assert len(errors) == before + 1 and "HTTP 500" in errors[-1].content

    await client.aclose()


def main() -> None:
    asyncio.run(run_checks())
    print("[OK] stream e2e acceptance passed")


if __name__ == "__main__":
    main()
