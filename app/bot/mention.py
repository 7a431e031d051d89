# FILE: app/bot/mention.py
"""
@mention handling for group and room chats.

In a group, a message that no keyword module claims only reaches NLU when
it @mentions the bot itself. The mention span is cut out of the raw text
(indices are codepoint offsets into the original message) before the text
is sanitized again for the intent parser.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence


@dataclass(frozen=True)
class Mentionee:
    index: int
    length: int
    is_self: bool = False
    type: str = "user"


def _self_mentions(mentionees: Iterable[Mentionee]) -> List[Mentionee]:
    return [m for m in mentionees if m.type == "user" and m.is_self]


def is_bot_mentioned(mentionees: Sequence[Mentionee]) -> bool:
    return bool(_self_mentions(mentionees))


def remove_bot_mentions(text: str, mentionees: Sequence[Mentionee]) -> str:
    """
    Cut every self-mention span out of text and collapse whitespace.

    Spans are removed back to front so earlier offsets stay valid;
    out-of-range spans are clamped or skipped.
    """
    spans = sorted(_self_mentions(mentionees), key=lambda m: m.index, reverse=True)
    if not spans:
        return text
    for m in spans:
        start = max(m.index, 0)
        end = min(m.index + m.length, len(text))
        if start >= end:
            continue
        text = text[:start] + text[end:]
    return " ".join(text.split())


__all__ = ["Mentionee", "is_bot_mentioned", "remove_bot_mentions"]
