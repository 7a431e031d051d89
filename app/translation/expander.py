# FILE: app/translation/expander.py
"""
Query expansion helpers.

Expansion appends synonyms, translations and related concepts to a short
course-search query so BM25 ranking has more terms to work with. It is
advisory: the original tokens always survive, and on any failure callers
get the original string back.

Expansion is attempted when the query is short (<= 15 codepoints) or
mentions a recognized technical acronym.
"""
from __future__ import annotations

import re
from typing import List

from app.translation.prompts import EXPANDER_SYSTEM_PROMPT, build_expansion_input

EXPANDER_TEMPERATURE = 0.3
EXPANDER_MAX_TOKENS = 200

# Queries longer than this (in codepoints) are only expanded when they
# contain an acronym
MAX_EXPAND_LENGTH = 15

ABBREVIATION_RE = re.compile(
    r"\b(AWS|AI|ML|DL|API|SDK|SQL|DB|UI|UX|IoT|AR|VR|NLP|CV|LLM|GPT|RAG|ETL|CI|CD|K8S|GCP|AZURE)\b",
    re.IGNORECASE | re.ASCII,
)

# Prefixes some models echo back despite the prompt
_ECHO_PREFIX = re.compile(r"^\s*(?:輸出|output)\s*[:：]\s*", re.IGNORECASE)

_WORD_RE = re.compile(r"[a-z0-9]+")
_CJK_RE = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff]+")


def contains_abbreviation(query: str) -> bool:
    return ABBREVIATION_RE.search(query) is not None


def should_expand(query: str) -> bool:
    query = query.strip()
    if not query:
        return False
    return len(query) <= MAX_EXPAND_LENGTH or contains_abbreviation(query)


def clean_expansion(text: str) -> str:
    """Collapse model output to a single whitespace-separated line."""
    text = _ECHO_PREFIX.sub("", text or "")
    return " ".join(text.split())


def tokenize(text: str) -> List[str]:
    """Lowercased ASCII words plus CJK unigrams and bigrams."""
    text = text.casefold()
    tokens = _WORD_RE.findall(text)
    for run in _CJK_RE.findall(text):
        tokens.extend(run)
        tokens.extend(run[i:i + 2] for i in range(len(run) - 1))
    return tokens


def ensure_original(original: str, expanded: str) -> str:
    """
    Guarantee every original token is present in the expansion.

    Tokens are compared as BM25 sees them (tokenize), so an original word
    that only survives inside a longer word counts as missing.

    Empty output -> original. Missing tokens -> original prepended.
    """
    original = original.strip()
    expanded = clean_expansion(expanded)
    if not expanded:
        return original
    wanted = set(tokenize(original))
    if wanted:
        complete = wanted <= set(tokenize(expanded))
    else:
        complete = original.casefold() in expanded.casefold()
    if complete:
        return expanded
    return f"{original} {expanded}"


def expansion_messages(query: str):
    """(system_prompt, user_text) for one expansion call."""
    return EXPANDER_SYSTEM_PROMPT, build_expansion_input(query.strip())


__all__ = [
    "EXPANDER_TEMPERATURE",
    "EXPANDER_MAX_TOKENS",
    "MAX_EXPAND_LENGTH",
    "ABBREVIATION_RE",
    "contains_abbreviation",
    "should_expand",
    "clean_expansion",
    "tokenize",
    "ensure_original",
    "expansion_messages",
]
