# FILE: app/bot/keywords.py
"""
Keyword regex builder for the pattern-action routers.

Every module declares its trigger words as plain lists; this module turns
them into anchored, case-insensitive patterns:

    ^(課程名稱|課程|課|course)(?:\\s|$)

- Keywords are sorted longest-first so "課程名稱" wins over "課".
- The trailing (?:\\s|$) rejects compound words: "quota123" does not match
  "quota", while "quota" and "quota foo" both do.
- Input is trimmed on both sides before matching.

Group 1 of every match is the keyword exactly as the user typed it, which
extract_search_term() uses to strip it from the message.
"""
from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List, Optional, Pattern


def build_keyword_regex(keywords: Iterable[str]) -> Pattern[str]:
    """Compile keywords into ^(k1|k2|...)(?:\\s|$), longest keyword first."""
    cleaned: List[str] = [k.strip() for k in keywords if k and k.strip()]
    if not cleaned:
        raise ValueError("build_keyword_regex requires at least one keyword")

    # sorted() is stable, so equal-length keywords keep declaration order
    ordered = sorted(cleaned, key=len, reverse=True)
    alternation = "|".join(re.escape(k) for k in ordered)
    return re.compile(rf"^({alternation})(?:\s|$)", re.IGNORECASE)


def match_keyword(pattern: Pattern[str], text: str) -> Optional[re.Match]:
    """Match a keyword pattern against whitespace-trimmed text."""
    return pattern.match(text.strip())


def extract_search_term(text: str, keyword: str) -> str:
    """
    Strip a leading keyword from text and return the rest, trimmed.

    The keyword comparison is case-insensitive. Returns "" when nothing
    but the keyword (and whitespace) was sent.
    """
    text = text.strip()
    if not keyword:
        return text
    if text[: len(keyword)].casefold() == keyword.casefold():
        return text[len(keyword):].strip()
    return text


def contains_all_chars(text: str, chars: str) -> bool:
    """
    True when every character of chars occurs in text, counting repeats.

    Case-insensitive; whitespace in chars is ignored.
    "資訊工程學系" contains all of "資工系"; "aa" needs two a's.
    """
    needed = Counter(ch for ch in chars.casefold() if not ch.isspace())
    if not needed:
        return False
    have = Counter(text.casefold())
    return all(have[ch] >= n for ch, n in needed.items())


__all__ = ["build_keyword_regex", "match_keyword", "extract_search_term", "contains_all_chars"]
