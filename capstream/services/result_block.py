"""Assembly of the sentinel-delimited result block into one JSON payload."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from capstream.core.logger import get_logger
from capstream.schemas.stream import ResultPayload
from capstream.services.frame_decoder import BLOCK_PREFIX

logger = get_logger("capstream.result_block")


class ResultBlockError(Exception):
    """A result block could not be turned into a payload. Never fatal to the session."""

    def __init__(self, message: str, raw: str = ""):
        self.message = message
        self.raw = raw
        super().__init__(message)


def extract_balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON strings (and escaped quotes) are skipped. This is a lossy
    recovery aid: on hostile input it can accept a truncated or unrelated object.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            ch = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)
    return None


def parse_result_block(raw: str) -> ResultPayload:
    """Decode one assembled block.

    Raises:
        ResultBlockError: the block is not JSON (even after recovery) or has no result_type
    """
    text = raw.strip()
    if text.startswith(BLOCK_PREFIX):
        text = text[len(BLOCK_PREFIX):].strip()
    if not text:
        raise ResultBlockError("Empty result block", raw=raw)

    data: Any
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Result block is not valid JSON (%s), trying balanced-object recovery", e)
        candidate = extract_balanced_object(text)
        if candidate is None:
            raise ResultBlockError(f"Result block is not valid JSON: {e}", raw=raw) from e
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as inner:
            raise ResultBlockError(f"Result block recovery failed: {inner}", raw=raw) from inner
        logger.info("Recovered result block from embedded object (%d of %d chars)", len(candidate), len(text))

    if not isinstance(data, dict):
        raise ResultBlockError(f"Result block must be a JSON object, got {type(data).__name__}", raw=raw)
    if "result_type" not in data:
        raise ResultBlockError("Result block has no result_type", raw=raw)

    try:
        return ResultPayload.model_validate(data)
    except ValidationError as e:
        raise ResultBlockError(f"Result block rejected: {e.error_count()} validation error(s)", raw=raw) from e


class ResultBlockAssembler:
    """Collects ResultBlockChunk texts in arrival order until the block ends."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    @property
    def pending(self) -> bool:
        return bool(self._parts)

    def append(self, text: str) -> None:
        self._parts.append(text)

    def reset(self) -> None:
        self._parts.clear()

    def finish(self) -> ResultPayload:
        """Parse the collected block and start over, whatever the outcome."""
        raw = "".join(self._parts)
        self._parts.clear()
        return parse_result_block(raw)
