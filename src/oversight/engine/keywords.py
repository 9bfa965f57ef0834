"""Keyword extraction and overlap scoring.

Keyword overlap is the only notion of "understanding" the engine has. It is a
soft compliance signal and is easy to game by stuffing descriptions with goal
vocabulary; it must not be treated as a security boundary.
"""
import json
import re
from typing import Any, Iterable

MIN_KEYWORD_LENGTH = 4
DEFAULT_KEYWORD_LIMIT = 20

STOP_WORDS = frozenset({
    "about", "also", "been", "being", "could", "does", "done", "each", "from",
    "have", "into", "just", "make", "more", "most", "must", "only", "over",
    "should", "some", "such", "than", "that", "their", "them", "then", "there",
    "these", "they", "this", "those", "very", "were", "what", "when", "where",
    "which", "while", "will", "with", "within", "without", "would", "your",
})

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str, limit: int | None = DEFAULT_KEYWORD_LIMIT) -> list[str]:
    """Normalize text to its significant tokens.

    Lowercases, strips punctuation, drops short tokens and stop words, and
    de-duplicates while keeping first-seen order. At most ``limit`` keywords
    are returned.
    """
    if not text:
        return []
    keywords: list[str] = []
    seen: set[str] = set()
    for word in _NON_WORD.sub("", text.lower()).split():
        if len(word) < MIN_KEYWORD_LENGTH or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if limit is not None and len(keywords) >= limit:
            break
    return keywords


def flatten_text(value: Any) -> str:
    """Render a (possibly nested) context value as plain text"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return " ".join(f"{k} {flatten_text(v)}" for k, v in value.items())
    if isinstance(value, (list, tuple, set)):
        return " ".join(flatten_text(v) for v in value)
    return json.dumps(value, default=str)


def keywords_match(a: str, b: str) -> bool:
    """Keywords match when equal or when one is a prefix of the other"""
    return a == b or a.startswith(b) or b.startswith(a)


def matching_keywords(source: Iterable[str], target: Iterable[str]) -> list[str]:
    """Keywords of ``source`` that match any keyword of ``target``"""
    target = list(target)
    return [kw for kw in source if any(keywords_match(kw, other) for other in target)]


def keyword_alignment(source: list[str], target: list[str]) -> float:
    """Overlap ratio of ``source`` against ``target`` in [0, 1].

    Returns 0.5 when there is nothing to align against.
    """
    if not target:
        return 0.5
    matches = matching_keywords(source, target)
    return min(1.0, len(matches) / max(len(source), len(target), 1))
