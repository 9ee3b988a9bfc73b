"""Logical frames decoded from the raw response body.

Frames are transient: the decoder produces them, the session routes them and
nothing keeps them afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Status:
    """Human-readable progress update (``status:`` line)."""

    text: str


@dataclass(frozen=True)
class TextDelta:
    """Incremental markdown fragment."""

    text: str


@dataclass(frozen=True)
class ResultBlockChunk:
    """Raw slice of an embedded result block, newline included."""

    text: str


@dataclass(frozen=True)
class ResultBlockEnd:
    """The result block sentinel was seen."""


@dataclass(frozen=True)
class Done:
    """Terminal ``[DONE]`` marker."""


@dataclass(frozen=True)
class RawLine:
    """SSE field line (``event:``, ``id:``, ``retry:``, comments) that carries no text."""

    text: str


Frame = Union[Status, TextDelta, ResultBlockChunk, ResultBlockEnd, Done, RawLine]


def frame_to_dict(frame: Frame) -> dict[str, str]:
    """Plain dict view used by the CLI ``replay --json`` output."""
    kind = type(frame).__name__
    text = getattr(frame, "text", None)
    if text is None:
        return {"type": kind}
    return {"type": kind, "text": text}
