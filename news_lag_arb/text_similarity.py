"""Text similarity — token Jaccard for headline dedup, fuzzy ratio for market questions."""

import re

from rapidfuzz import fuzz

_QUESTION_STOPWORDS = {
    "will", "the", "a", "an", "be", "by", "in", "of", "on", "at", "to", "for", "is",
}


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set Jaccard similarity of two strings, in [0, 1].

    Tokens are the case-folded, whitespace-separated words. Two strings with
    no tokens at all score 0.0, so blank input never reads as a duplicate.
    """
    set_a = set(a.casefold().split())
    set_b = set(b.casefold().split())
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


# Venues word the same subject differently
_QUESTION_SYNONYMS = [
    (re.compile(r"\bfederal reserve\b"), "fed"),
    (re.compile(r"\binterest rates?\b"), "rates"),
    (re.compile(r"\bbtc\b"), "bitcoin"),
    (re.compile(r"\beth\b"), "ethereum"),
    (re.compile(r"\bu\.s\.|\bunited states\b"), "us"),
]


def normalize_question(text: str) -> str:
    text = text.lower()
    for pattern, replacement in _QUESTION_SYNONYMS:
        text = pattern.sub(replacement, text)
    text = re.sub(r"[^\w\s$%.,]", " ", text)
    words = [w.strip(".,") for w in text.split()]
    return " ".join(w for w in words if w and w not in _QUESTION_STOPWORDS)


def question_similarity(a: str, b: str) -> float:
    """Fuzzy similarity of two market questions, in [0, 1]."""
    na, nb = normalize_question(a), normalize_question(b)
    if not na or not nb:
        return 0.0
    return fuzz.token_sort_ratio(na, nb) / 100.0
