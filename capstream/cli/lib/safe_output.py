"""
Terminal-safe output for the CLI.

Streams contain arbitrary user text, so every write degrades gracefully on
terminals whose encoding cannot represent it (replacement characters, then
ASCII) instead of raising in the middle of a stream.
"""

import sys
from typing import Optional

import typer


def supports_unicode() -> bool:
    """True if stdout can encode a non-ASCII status glyph."""
    try:
        "✅".encode(sys.stdout.encoding or "utf-8")
        return True
    except (UnicodeEncodeError, LookupError):
        return False


_UNICODE_SUPPORT = supports_unicode()


def emoji(unicode_char: str, ascii_fallback: str) -> str:
    """Return ``unicode_char`` if the terminal supports it, else ``ascii_fallback`` (e.g. '[ERROR]')."""
    return unicode_char if _UNICODE_SUPPORT else ascii_fallback


def _degrade(text: str, encoding: Optional[str]) -> str:
    encoding = encoding or "utf-8"
    try:
        return text.encode(encoding, errors="replace").decode(encoding, errors="replace")
    except LookupError:
        return text.encode("ascii", errors="replace").decode("ascii")


def safe_print(text: str, end: str = "\n", flush: bool = False, err: bool = False) -> None:
    """
    Print text with terminal-encoding fallback.

    Args:
        text: Text to print
        end: String appended after the text (default: newline)
        flush: Whether to flush the stream
        err: Print to stderr instead of stdout
    """
    if err:
        safe_print_err(text, end=end, flush=flush)
        return

    try:
        print(text, end=end, flush=flush)
    except UnicodeEncodeError:
        print(_degrade(text, sys.stdout.encoding), end=end, flush=flush)


def safe_print_err(text: str, end: str = "\n", flush: bool = False) -> None:
    """Print to stderr through typer.echo with the same fallback as safe_print."""
    nl = end == "\n"
    try:
        typer.echo(text, err=True, nl=nl)
    except UnicodeEncodeError:
        typer.echo(_degrade(text, sys.stderr.encoding), err=True, nl=nl)
    if flush:
        sys.stderr.flush()


def decode_bytes(data: bytes, preferred_encodings: Optional[list[str]] = None) -> str:
    """
    Decode a recorded response body with best-effort fallback.

    Tries the preferred encodings, then UTF-8, the stdin encoding and GB18030;
    falls back to UTF-8 with replacement characters.
    """
    candidates = list(preferred_encodings or [])
    candidates.extend(
        k for k in ["utf-8", getattr(sys.stdin, "encoding", None), "gb18030"] if k
    )

    for encoding in candidates:
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue

    return data.decode("utf-8", errors="replace")
