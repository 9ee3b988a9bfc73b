"""
Default mapping from a result payload to a renderable artifact descriptor.

Payload shape (kv results):
    {"result_type": "kv_table" | "bar_chart" | ...,
     "data": {"values": [{...}, ...]},
     "metadata": {"columns": [...], "title": "..."}}

Anything this module cannot describe maps to None; callers may plug in their
own mapper with the same signature.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from capstream.schemas.stream import ResultPayload

TABLE_TYPES = frozenset({"kv_table", "kv", "table"})
CHART_TYPES = frozenset(
    {
        "bar_chart",
        "pie_chart",
        "line_chart",
        "scatter_chart",
        "bubble_chart",
        "treemap",
        "heatmap",
        "chart",
    }
)


class Artifact(BaseModel):
    kind: Literal["table", "chart"]
    result_type: str
    title: str = ""
    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)


def normalize_result_type(result_type: Any) -> str:
    value = str(result_type or "").strip().lower()
    if value in TABLE_TYPES:
        return "kv_table"
    return value


def _rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
    data = payload.get("data")
    values = data.get("values") if isinstance(data, dict) else None
    if not isinstance(values, list):
        return []
    return [row for row in values if isinstance(row, dict)]


def _columns(payload: dict[str, Any], rows: list[dict[str, Any]]) -> list[str]:
    metadata = payload.get("metadata")
    declared = metadata.get("columns") if isinstance(metadata, dict) else None
    if isinstance(declared, list) and declared:
        return [str(c) for c in declared if c]
    return [str(k) for k in rows[0]] if rows else []


def _title(payload: dict[str, Any]) -> str:
    metadata = payload.get("metadata")
    if isinstance(metadata, dict) and metadata.get("title"):
        return str(metadata["title"])
    return str(payload.get("title") or "")


def payload_to_artifact(payload: ResultPayload) -> Artifact | None:
    raw = payload.to_dict()
    result_type = normalize_result_type(raw.get("result_type"))
    rows = _rows(raw)
    if not rows:
        return None

    if result_type == "kv_table":
        kind: Literal["table", "chart"] = "table"
    elif result_type in CHART_TYPES or result_type.endswith("_chart"):
        kind = "chart"
    else:
        return None

    return Artifact(
        kind=kind,
        result_type=result_type,
        title=_title(raw),
        columns=_columns(raw, rows),
        rows=rows,
    )
