"""Replay command - decode a recorded response body offline."""

import json
from pathlib import Path

import typer

from capstream.cli._globals import get_global_config
from capstream.cli.lib.chat_renderer import ChatRenderer
from capstream.cli.lib.safe_output import decode_bytes, safe_print
from capstream.schemas.frames import (
    Done,
    ResultBlockChunk,
    ResultBlockEnd,
    Status,
    TextDelta,
    frame_to_dict,
)
from capstream.services.frame_decoder import decode_chunks
from capstream.services.result_block import ResultBlockAssembler, ResultBlockError



def split_chunks(text: str, size: int) -> list[str]:
    if size <= 0:
        return [text]
    return [text[i:i + size] for i in range(0, len(text), size)]


def replay(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Recorded response body."),
    chunk_size: int = typer.Option(
        0,
        "--chunk-size",
        "-n",
        min=0,
        help="Feed the body in pieces of N characters (0 = all at once).",
    ),
) -> None:
    """Decode a recorded body; text mode renders it, --json prints one frame per line."""
    config = get_global_config()
    body = decode_bytes(file.read_bytes())
    frames = decode_chunks(split_chunks(body, chunk_size))

    if config.output_format == "json":
        for frame in frames:
            safe_print(json.dumps(frame_to_dict(frame), ensure_ascii=False))
        return

    renderer = ChatRenderer()
    assembler = ResultBlockAssembler()
    for frame in frames:
        if isinstance(frame, Status):
            renderer.render_status(frame.text)
        elif isinstance(frame, TextDelta):
            renderer.render_token(frame.text)
        elif isinstance(frame, ResultBlockChunk):
            assembler.append(frame.text)
        elif isinstance(frame, ResultBlockEnd):
            try:
                renderer.render_payload(assembler.finish())
            except ResultBlockError as e:
                renderer.render_error(f"Malformed result block: {e.message}")
        elif isinstance(frame, Done):
            break
    safe_print("")
