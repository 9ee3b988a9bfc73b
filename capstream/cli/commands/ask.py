"""Ask command - stream one query and render it as it arrives."""

import asyncio
from typing import Optional

import typer

from capstream.cli._globals import get_global_config
from capstream.cli.config import CLIConfig
from capstream.cli.lib.chat_renderer import ChatRenderer
from capstream.core.logger import get_logger
from capstream.core.stream_config import get_stream_config
from capstream.schemas.conversation import CONVERSATION_CREATED, ConversationCreated
from capstream.schemas.stream import QueryBody, StreamRequest
from capstream.services.result_block import ResultBlockError
from capstream.services.stream_session import SessionState, StreamEngine, StreamHandlers
from capstream.services.transport import APIError, HttpxStreamTransport

logger = get_logger("capstream.cli.ask")


def _error_text(error: Exception) -> str:
    if isinstance(error, APIError):
        return error.user_friendly_message()
    return f"{type(error).__name__}: {error}"


async def run_ask(
    query: str,
    conversation_id: Optional[str],
    config: CLIConfig,
    renderer: ChatRenderer,
    transport: Optional[HttpxStreamTransport] = None,
) -> SessionState:
    """Stream ``query`` through a fresh engine and render every event."""
    owned = transport is None
    transport = transport or HttpxStreamTransport(
        base_url=config.api_base,
        timeout=float(config.timeout),
        headers=config.auth_headers(),
    )
    engine = StreamEngine(transport.send, config=get_stream_config())

    def on_created(event: ConversationCreated) -> None:
        logger.info("Conversation %s created: %s", event.id, event.title)

    engine.events.subscribe(CONVERSATION_CREATED, on_created)

    handlers = StreamHandlers(
        on_status=renderer.render_status,
        on_chunk=renderer.render_token,
        on_kv_results=renderer.render_payload,
        on_metadata=renderer.render_metadata,
        on_done=renderer.render_done,
        on_error=lambda e: renderer.render_error(_error_text(e)),
        on_block_error=lambda e: logger.warning("Result block dropped: %s", e.message),
    )
    request = StreamRequest(
        url=config.query_path,
        body=QueryBody(query=query, conversation_id=conversation_id),
    )

    try:
        session = engine.start(request, handlers)
        return await session.wait()
    finally:
        engine.stop()
        if owned:
            await transport.aclose()


def ask(
    query: str = typer.Argument(..., help="Question for the analytics assistant."),
    conversation_id: Optional[str] = typer.Option(
        None,
        "--conversation-id",
        "-c",
        help="Continue an existing conversation instead of starting a new one.",
    ),
) -> None:
    """Stream a query and print status, text and result blocks as they arrive."""
    text = query.strip()
    if not text:
        typer.echo("Query must not be empty.", err=True)
        raise typer.Exit(code=2)

    config = get_global_config()
    renderer = ChatRenderer(json_output=config.output_format == "json")
    state = asyncio.run(run_ask(text, conversation_id, config, renderer))
    if state == SessionState.FAILED:
        raise typer.Exit(code=1)
