"""
Transport frame decoder.

Turns an ordered sequence of arbitrarily sized text (or UTF-8 byte) chunks into
logical frames. Output never depends on where the transport split the body:
the decoder keeps the unfinished tail of the last line and only classifies
complete lines.

Line grammar (one classification per complete line):
  status:<text>                 -> Status
  data:<payload>                -> TextDelta
  kv_results:<json...>          -> start of a result block (ResultBlockChunk...)
  ..._kv_results_end_...        -> end of the open result block (ResultBlockEnd)
  [DONE] | data:[DONE] | data: [DONE]  -> Done
  event:/id:/retry:/:comment    -> RawLine
  anything else                 -> TextDelta, verbatim
"""

from __future__ import annotations

import codecs
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from capstream.core.logger import get_logger
from capstream.schemas.frames import (
    Done,
    Frame,
    RawLine,
    ResultBlockChunk,
    ResultBlockEnd,
    Status,
    TextDelta,
)

logger = get_logger("capstream.decoder")

DONE_SENTINEL = "[DONE]"
DONE_LINES = frozenset({DONE_SENTINEL, "data:[DONE]", "data: [DONE]"})
STATUS_PREFIX = "status:"
DATA_PREFIX = "data:"
BLOCK_PREFIX = "kv_results:"
BLOCK_END_SENTINEL = "_kv_results_end_"
SSE_FIELD_PREFIXES = ("event:", "id:", "retry:", ":")


def strip_data_marker(line: str) -> str:
    """Remove the ``data:`` marker and at most one space of its padding.

    A single space after the marker belongs to the token (streamed words carry
    their own leading space), so it is kept. Padding of two or more spaces
    loses exactly one. Nothing else is ever trimmed.
    """
    payload = line[len(DATA_PREFIX):]
    if payload.startswith("  "):
        payload = payload[1:]
    return payload


class TransportFrameDecoder:
    """Incremental decoder for one response body.

    Usage:
        decoder = TransportFrameDecoder()
        for chunk in body:
            for frame in decoder.feed(chunk):
                ...
        for frame in decoder.close():
            ...
    """

    def __init__(self) -> None:
        self._pending = ""
        self._in_block = False
        self._done = False
        self._closed = False
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def in_block(self) -> bool:
        return self._in_block

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, chunk: str | bytes) -> list[Frame]:
        """Consume one delivery and return the frames of every completed line."""
        if self._done or self._closed:
            return []

        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._utf8.decode(bytes(chunk))
        if not chunk:
            return []

        lines = (self._pending + chunk).split("\n")
        self._pending = lines.pop()

        frames: list[Frame] = []
        for raw_line in lines:
            self._classify(_strip_cr(raw_line), frames)
            if self._done:
                self._pending = ""
                break
        return frames

    def close(self) -> list[Frame]:
        """Flush the buffered partial line when the transport ends."""
        if self._closed:
            return []
        self._closed = True
        if self._done:
            return []

        tail = self._utf8.decode(b"", final=True)
        pending = self._pending + tail
        self._pending = ""

        frames: list[Frame] = []
        if pending:
            self._classify(_strip_cr(pending), frames)
        if self._in_block and not self._done:
            logger.warning("Result block was not terminated before the stream ended")
            self._end_block(frames)
        return frames

    def _classify(self, line: str, frames: list[Frame]) -> None:
        if not line:
            if self._in_block:
                frames.append(ResultBlockChunk("\n"))
            return

        if line in DONE_LINES:
            if self._in_block:
                logger.warning("Done marker arrived inside an open result block")
                self._end_block(frames)
            frames.append(Done())
            self._done = True
            return

        if self._in_block:
            self._block_line(line, frames)
            return

        if line.startswith(STATUS_PREFIX):
            text = line[len(STATUS_PREFIX):].strip()
            if text:
                frames.append(Status(text))
            return

        if line.startswith(BLOCK_PREFIX):
            self._in_block = True
            remainder = line[len(BLOCK_PREFIX):]
            if remainder.strip() == BLOCK_END_SENTINEL:
                self._end_block(frames)
            else:
                self._block_line(remainder, frames)
            return

        if line.startswith(DATA_PREFIX):
            payload = strip_data_marker(line)
            if not payload or payload.strip() == DONE_SENTINEL:
                return
            frames.append(TextDelta(payload))
            return

        if line.startswith(SSE_FIELD_PREFIXES):
            frames.append(RawLine(line))
            return

        frames.append(TextDelta(line))

    def _block_line(self, line: str, frames: list[Frame]) -> None:
        end = line.find(BLOCK_END_SENTINEL)
        if end == -1:
            frames.append(ResultBlockChunk(line + "\n"))
            return
        head = line[:end]
        if head:
            frames.append(ResultBlockChunk(head))
        self._end_block(frames)

    def _end_block(self, frames: list[Frame]) -> None:
        self._in_block = False
        frames.append(ResultBlockEnd())


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def decode_chunks(chunks: Iterable[str | bytes]) -> Iterator[Frame]:
    """Decode a finite sequence of deliveries, flushing at the end."""
    decoder = TransportFrameDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
        if decoder.done:
            return
    yield from decoder.close()


async def adecode_chunks(chunks: AsyncIterable[str | bytes]) -> AsyncIterator[Frame]:
    """Async twin of ``decode_chunks`` for transport iterators."""
    decoder = TransportFrameDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
        if decoder.done:
            return
    for frame in decoder.close():
        yield frame
