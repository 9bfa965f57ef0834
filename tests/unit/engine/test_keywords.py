"""Tests for keyword extraction and overlap scoring"""
from oversight.engine.keywords import (
    extract_keywords,
    flatten_text,
    keyword_alignment,
    keywords_match,
    matching_keywords,
)


def test_extract_keywords_normalizes_and_filters():
    """Lowercase, punctuation stripped, short and stop words dropped"""
    keywords = extract_keywords("Implement SECURE auth, with JWT!")

    assert keywords == ["implement", "secure", "auth"]


def test_extract_keywords_deduplicates_and_caps():
    text = " ".join(f"word{i}" for i in range(30)) + " word0 word1"

    keywords = extract_keywords(text)

    assert len(keywords) == 20
    assert len(set(keywords)) == 20
    assert keywords[0] == "word0"


def test_extract_keywords_without_limit():
    text = " ".join(f"token{i}" for i in range(30))
    assert len(extract_keywords(text, limit=None)) == 30


def test_extract_keywords_empty():
    assert extract_keywords("") == []
    assert extract_keywords("a an the") == []


def test_keywords_match_prefix():
    assert keywords_match("auth", "authentication")
    assert keywords_match("authentication", "auth")
    assert keywords_match("secure", "secure")
    assert not keywords_match("user", "secure")


def test_matching_keywords():
    matches = matching_keywords(["implement", "secure", "auth"], ["implement", "authentication"])
    assert matches == ["implement", "auth"]


def test_keyword_alignment_uses_larger_side():
    score = keyword_alignment(
        ["implement", "secure", "auth"],
        ["implement", "secure", "user", "authentication"],
    )
    assert score == 0.75


def test_keyword_alignment_without_target_is_neutral():
    assert keyword_alignment(["anything"], []) == 0.5


def test_keyword_alignment_no_overlap():
    assert keyword_alignment(["database"], ["frontend", "styling"]) == 0.0


def test_flatten_text_nested():
    text = flatten_text({"max_complexity": 0.8, "patterns": ["repository", "service"]})

    assert "max_complexity" in text
    assert "repository" in text
    assert "0.8" in text
