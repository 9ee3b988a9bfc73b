"""
Render finalization for streamed markdown.

Incremental rendering leaves artifacts behind: stray control characters, words
that arrived one letter per fragment, list markers stranded on their own line,
list items wrapped over several lines, inline "- **Key**:" runs that should be
list items, runaway blank lines and unclosed code or math fences. ``finalize_for_render``
repairs them once the message is complete.

The transform is idempotent: finalize_for_render(finalize_for_render(x)) equals
finalize_for_render(x). Fenced code and display-math segments are never touched
apart from closing an unbalanced fence at the very end.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

CONTROL_RE = re.compile("[\u0000-\u0008\u000b\u000c\u000e-\u001f\u200b\u200c\u200d\u2060\ufeff]")
BLANK_RUN_RE = re.compile(r"\n{3,}")

# "details:- **Hash**: abc" -> "details:\n- **Hash**: abc"
INLINE_BULLET_AFTER_PUNCT_RE = re.compile(r"([:.)\]])[ \t]*-[ \t]+(?=\*\*[^*\n]+?\*\*:)")
# "0 - **Hash**: abc" -> "0\n- **Hash**: abc"
INLINE_BULLET_RE = re.compile(r"(?<=\S)[ \t]+-[ \t]+(?=\*\*[^*\n]+?\*\*:)")

LONE_MARKER_RE = re.compile(r"^\s*([*+\-]|\d{1,3}\.)\s*$")
LIST_ITEM_RE = re.compile(r"^\s*(?:[*+\-]|\d{1,3}\.)\s+\S")
# Lines that open their own block and never continue a list item.
BLOCK_START_RE = re.compile(r"^\s*(?:#{1,6}\s|\||>)")

# "A D A" -> "ADA": three or more single letters or digits, one space apart.
SPACED_LETTERS_RE = re.compile(r"(?<![^\s(])[A-Za-z0-9](?: [A-Za-z0-9]){2,}(?=[\s.,;:!?)}\]]|$)")

MAX_REPAIR_PASSES = 4

CODE_FENCE = "```"
MATH_FENCE = "$$"


@dataclass
class Segment:
    kind: str  # text | code | math
    content: str


def segment_by_fences(source: str) -> list[Segment]:
    """Split markdown into text, fenced-code and display-math segments by line."""
    segments: list[Segment] = []
    buf: list[str] = []
    mode = "text"

    def push() -> None:
        if buf:
            segments.append(Segment(mode, "\n".join(buf)))
            buf.clear()

    for line in source.split("\n"):
        if mode == "text":
            if line.startswith(CODE_FENCE):
                push()
                mode = "code"
            elif line.startswith(MATH_FENCE):
                push()
                mode = "math"
            buf.append(line)
            continue

        buf.append(line)
        closing = CODE_FENCE if mode == "code" else MATH_FENCE
        if line.startswith(closing) and len(buf) > 1:
            push()
            mode = "text"

    push()
    return segments


def strip_control_chars(text: str) -> str:
    return CONTROL_RE.sub("", text)


def collapse_blank_lines(text: str) -> str:
    return BLANK_RUN_RE.sub("\n\n", text)


def promote_inline_bullets(text: str) -> str:
    text = INLINE_BULLET_AFTER_PUNCT_RE.sub(r"\1\n- ", text)
    return INLINE_BULLET_RE.sub("\n- ", text)


def fix_spaced_letters(text: str) -> str:
    """Rejoin words that arrived one letter per fragment ("A D A" -> "ADA")."""
    return SPACED_LETTERS_RE.sub(lambda m: m.group(0).replace(" ", ""), text)


def _starts_item(line: str) -> bool:
    return bool(LONE_MARKER_RE.match(line) or LIST_ITEM_RE.match(line))


def _continuation(lines: list[str], start: int) -> tuple[int, str]:
    """Collect the lines that continue a list item, up to a blank line or a new block."""
    j = start
    parts: list[str] = []
    while j < len(lines):
        line = lines[j]
        if not line.strip() or _starts_item(line) or BLOCK_START_RE.match(line):
            break
        parts.append(line.strip())
        j += 1
    return j, " ".join(parts)


def normalize_lists(text: str) -> str:
    """Rebuild list items broken across lines.

    A marker left alone on its line is joined with the text that follows it,
    and wrapped continuation lines are folded into the item above them.
    """
    lines = text.split("\n")
    out: list[str] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if LIST_ITEM_RE.match(line):
            i, extra = _continuation(lines, i + 1)
            out.append(f"{line.rstrip()} {extra}" if extra else line)
            continue

        match = LONE_MARKER_RE.match(line)
        if not match:
            out.append(line)
            i += 1
            continue

        j = i + 1
        while j < len(lines) and not lines[j].strip():
            j += 1
        follower = lines[j] if j < len(lines) else ""
        if not follower.strip() or _starts_item(follower) or BLOCK_START_RE.match(follower):
            out.append(line)
            i += 1
            continue

        i, extra = _continuation(lines, j + 1)
        item = f"{match.group(1)} {follower.strip()}"
        out.append(f"{item} {extra}" if extra else item)
    return "\n".join(out)


def balance_fences(text: str) -> str:
    if text.count(CODE_FENCE) % 2:
        text += "\n" + CODE_FENCE
    if text.count(MATH_FENCE) % 2:
        text += "\n" + MATH_FENCE
    return text


def _repair_text(text: str) -> str:
    text = strip_control_chars(text)
    # Steps feed each other; repeat until none of them changes the text.
    for _ in range(MAX_REPAIR_PASSES):
        repaired = fix_spaced_letters(text)
        repaired = promote_inline_bullets(repaired)
        repaired = normalize_lists(repaired)
        repaired = collapse_blank_lines(repaired)
        if repaired == text:
            break
        text = repaired
    return text


def finalize_for_render(content: str) -> str:
    if not content:
        return ""
    rebuilt = "\n".join(
        _repair_text(seg.content) if seg.kind == "text" else seg.content
        for seg in segment_by_fences(content)
    )
    return balance_fences(rebuilt)
