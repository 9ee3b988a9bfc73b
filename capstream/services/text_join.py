"""
Boundary-safe joining of streamed text fragments.

Streamed tokens do not always carry their own spacing. ``smart_append`` decides,
from the characters on each side of the boundary, whether one space belongs
between the existing content and the next fragment.
"""

from __future__ import annotations

from dataclasses import dataclass

# Bech32-style identifier prefixes that are followed directly by their payload
# (addr1..., stake1..., pool1...). Longer prefixes first.
DEFAULT_GLUE_PREFIXES: tuple[str, ...] = (
    "addr_test",
    "stake_test",
    "addr_vk",
    "stake_vk",
    "addr",
    "stake",
    "pool",
    "asset",
    "drep",
    "script",
)

SENTENCE_PUNCTUATION = frozenset(".,;:!?")


@dataclass(frozen=True)
class JoinRules:
    """Configurable part of the join heuristic."""

    glue_prefixes: tuple[str, ...] = DEFAULT_GLUE_PREFIXES
    case_sensitive: bool = False

    def ends_with_glue_prefix(self, text: str) -> bool:
        """True when ``text`` ends with a whole glue-prefix token.

        The prefix has to start its word: "addr" matches, "mistake" does not.
        """
        for prefix in self.glue_prefixes:
            if not prefix or len(text) < len(prefix):
                continue
            start = len(text) - len(prefix)
            tail = text[start:]
            if self.case_sensitive:
                matched = tail == prefix
            else:
                matched = tail.lower() == prefix.lower()
            if matched and (start == 0 or not _is_alnum(text[start - 1])):
                return True
        return False


DEFAULT_JOIN_RULES = JoinRules()


def _is_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def smart_append(existing: str, fragment: str, rules: JoinRules = DEFAULT_JOIN_RULES) -> str:
    """Append ``fragment`` to ``existing`` with at most one inserted space.

    >>> smart_append("Block 1", "234")
    'Block 1 234'
    >>> smart_append("addr", "1q9x")
    'addr1q9x'
    >>> smart_append("3.", "14")
    '3.14'
    """
    if not fragment:
        return existing or ""
    if not existing:
        return fragment

    last = existing[-1]
    first = fragment[0]

    if first.isspace() or last.isspace():
        return existing + fragment

    if _is_alnum(last) and _is_alnum(first):
        if rules.ends_with_glue_prefix(existing):
            return existing + fragment
        return existing + " " + fragment

    if last in SENTENCE_PUNCTUATION and first.isalpha():
        return existing + " " + fragment

    if last == "." and first.isdigit():
        return existing + fragment

    return existing + fragment
