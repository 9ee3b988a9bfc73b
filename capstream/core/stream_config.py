"""
Stream engine configuration.

Resolution priority, lowest to highest:
  1. Default values
  2. Environment variables
  3. Explicit keyword arguments to ``get_stream_config``

Environment variables:
  - CAPSTREAM_CONVERSATION_HEADER: response header carrying the resolved conversation id
  - CAPSTREAM_USER_MESSAGE_HEADER: response header carrying the originating user message id
  - CAPSTREAM_TITLE_MAX_CHARS: length of the title derived from the query (default 80)
  - CAPSTREAM_GLUE_PREFIXES: comma-separated identifier prefixes that join digits without a space
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from capstream.services.text_join import DEFAULT_GLUE_PREFIXES, JoinRules

DEFAULT_CONVERSATION_HEADER = "X-Conversation-Id"
DEFAULT_USER_MESSAGE_HEADER = "X-User-Message-Id"
DEFAULT_TITLE_MAX_CHARS = 80


@dataclass
class StreamConfig:
    """Settings consumed by StreamEngine and ChatView."""

    conversation_header: str = DEFAULT_CONVERSATION_HEADER
    user_message_header: str = DEFAULT_USER_MESSAGE_HEADER
    title_max_chars: int = DEFAULT_TITLE_MAX_CHARS
    join_rules: JoinRules = field(default_factory=JoinRules)

    def to_dict(self) -> dict:
        return {
            "conversation_header": self.conversation_header,
            "user_message_header": self.user_message_header,
            "title_max_chars": self.title_max_chars,
            "glue_prefixes": list(self.join_rules.glue_prefixes),
        }


def get_glue_prefixes_from_env() -> tuple[str, ...]:
    raw = os.getenv("CAPSTREAM_GLUE_PREFIXES")
    if raw is None:
        return DEFAULT_GLUE_PREFIXES
    prefixes = tuple(p.strip() for p in raw.split(",") if p.strip())
    return prefixes


def get_title_max_chars_from_env() -> int:
    try:
        value = os.getenv("CAPSTREAM_TITLE_MAX_CHARS")
        if value:
            parsed = int(value)
            if parsed > 0:
                return parsed
    except (ValueError, TypeError):
        pass

    return DEFAULT_TITLE_MAX_CHARS


def get_stream_config(
    conversation_header: Optional[str] = None,
    user_message_header: Optional[str] = None,
    title_max_chars: Optional[int] = None,
    glue_prefixes: Optional[tuple[str, ...]] = None,
) -> StreamConfig:
    return StreamConfig(
        conversation_header=conversation_header
        or os.getenv("CAPSTREAM_CONVERSATION_HEADER")
        or DEFAULT_CONVERSATION_HEADER,
        user_message_header=user_message_header
        or os.getenv("CAPSTREAM_USER_MESSAGE_HEADER")
        or DEFAULT_USER_MESSAGE_HEADER,
        title_max_chars=title_max_chars or get_title_max_chars_from_env(),
        join_rules=JoinRules(
            glue_prefixes=glue_prefixes if glue_prefixes is not None else get_glue_prefixes_from_env()
        ),
    )
