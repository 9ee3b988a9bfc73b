"""Terminal renderer for stream sessions.

Status lines replace each other, text fragments are printed as they arrive and
result payloads are drawn as blocks between separators. In JSON mode every
event is one JSON line on stdout.
"""

from __future__ import annotations

import json
from typing import Any

from capstream.cli.lib.safe_output import emoji, safe_print
from capstream.services.artifacts import Artifact, payload_to_artifact
from capstream.schemas.stream import ResultPayload, StreamMetadata

SEPARATOR = "-" * 60
MAX_TABLE_ROWS = 20
MAX_CELL_CHARS = 32


def _cell(value: Any) -> str:
    text = "" if value is None else str(value)
    text = " ".join(text.split())
    if len(text) > MAX_CELL_CHARS:
        return text[: MAX_CELL_CHARS - 3] + "..."
    return text


def format_table(columns: list[str], rows: list[dict[str, Any]], max_rows: int = MAX_TABLE_ROWS) -> list[str]:
    """Fixed-width plain-text table, truncated to ``max_rows`` rows."""
    shown = rows[:max_rows]
    cells = [[_cell(row.get(col)) for col in columns] for row in shown]
    widths = [max([len(col)] + [len(r[i]) for r in cells]) for i, col in enumerate(columns)]

    lines = [
        "  ".join(col.ljust(w) for col, w in zip(columns, widths)).rstrip(),
        "  ".join("-" * w for w in widths),
    ]
    for r in cells:
        lines.append("  ".join(c.ljust(w) for c, w in zip(r, widths)).rstrip())
    if len(rows) > max_rows:
        lines.append(f"... {len(rows) - max_rows} more rows")
    return lines


class ChatRenderer:
    """Render stream events with a stable block structure."""

    def __init__(self, json_output: bool = False) -> None:
        self.json_output = json_output
        self._last_status = ""
        self._mid_line = False

    def _emit_json(self, event: str, **fields: Any) -> None:
        safe_print(json.dumps({"event": event, **fields}, ensure_ascii=False), flush=True)

    def _break_line(self) -> None:
        if self._mid_line:
            safe_print("")
            self._mid_line = False

    def render_status(self, text: str) -> None:
        if self.json_output:
            self._emit_json("status", text=text)
            return
        if text == self._last_status:
            return
        self._last_status = text
        self._break_line()
        safe_print(f"{emoji('⏳', '[...]')} {text}", flush=True)

    def render_token(self, content: str) -> None:
        """Render incremental text without newline."""
        if self.json_output:
            self._emit_json("text", text=content)
            return
        if content:
            safe_print(content, end="", flush=True)
            self._mid_line = not content.endswith("\n")

    def render_metadata(self, meta: StreamMetadata) -> None:
        if self.json_output:
            self._emit_json("metadata", **meta.model_dump())

    def render_payload(self, payload: ResultPayload) -> None:
        if self.json_output:
            self._emit_json("kv_results", payload=payload.to_dict())
            return
        artifact = payload_to_artifact(payload)
        if artifact is None:
            self._break_line()
            safe_print(f"\n{emoji('📦', '[RESULT]')} {payload.result_type}")
            safe_print(json.dumps(payload.to_dict(), ensure_ascii=False, indent=2))
            return
        self.render_artifact(artifact)

    def render_artifact(self, artifact: Artifact) -> None:
        self._break_line()
        mark = emoji("📊", "[CHART]") if artifact.kind == "chart" else emoji("📋", "[TABLE]")
        safe_print("\n" + SEPARATOR)
        safe_print(f"{mark} {artifact.title or artifact.result_type}")
        if artifact.columns:
            for line in format_table(artifact.columns, artifact.rows):
                safe_print(line)
        safe_print(SEPARATOR)

    def render_done(self, meta: StreamMetadata) -> None:
        if self.json_output:
            self._emit_json("done", **meta.model_dump())
            return
        self._break_line()
        if meta.conversation_id:
            safe_print(f"\n{emoji('✅', '[DONE]')} conversation {meta.conversation_id}")

    def render_error(self, error_msg: str) -> None:
        """Render error block."""
        if self.json_output:
            self._emit_json("error", message=error_msg)
            return
        self._break_line()
        safe_print(f"\n{emoji('❌', '[ERROR]')} {error_msg}", err=True)
