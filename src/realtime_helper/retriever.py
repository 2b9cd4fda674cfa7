# retriever.py
"""Keyword relevance scoring and snippet extraction over knowledge base documents.

Scoring is literal, case-insensitive substring counting: each query token
found in the title counts 3, in the joined tags 2 and in the content 1.
A token that is part of a longer word still counts.
"""

import math
import re
from typing import Any, List, Sequence

from .models import Document, ScoredResult

TITLE_WEIGHT = 3
TAGS_WEIGHT = 2
CONTENT_WEIGHT = 1

MIN_TOKEN_LENGTH = 2
SNIPPET_RADIUS = 80
ELLIPSIS = "…"

DEFAULT_TOP_K = 5
MIN_TOP_K = 1
MAX_TOP_K = 10

# Runs of Unicode letters and digits
_TOKEN_RE = re.compile(r"[^\W_]+")


def tokenize(text: str) -> List[str]:
    """Lower-case ``text`` and split it into letter/digit runs of length >= 2."""
    if not text:
        return []
    return [t for t in _TOKEN_RE.findall(text.lower()) if len(t) >= MIN_TOKEN_LENGTH]


def count_occurrences(text: str, word: str) -> int:
    """Count non-overlapping, case-insensitive occurrences of ``word`` in ``text``."""
    if not text or not word:
        return 0
    return len(re.findall(re.escape(word), text, flags=re.IGNORECASE))


def score_document(doc: Document, tokens: Sequence[str]) -> int:
    tags = " ".join(doc.tags)
    score = 0
    for token in tokens:
        score += TITLE_WEIGHT * count_occurrences(doc.title, token)
        score += TAGS_WEIGHT * count_occurrences(tags, token)
        score += CONTENT_WEIGHT * count_occurrences(doc.content, token)
    return score


def make_snippet(content: str, tokens: Sequence[str], radius: int = SNIPPET_RADIUS) -> str:
    """Extract a window of ``radius`` characters around the earliest token match.

    Falls back to the leading ``2 * radius`` characters when no token
    occurs in ``content``. Ellipses mark truncated ends.
    """
    if not content:
        return ""

    lowered = content.lower()
    idx = -1
    for token in tokens:
        i = lowered.find(token.lower())
        if i >= 0 and (idx < 0 or i < idx):
            idx = i

    if idx < 0:
        head = content[: radius * 2]
        return head + (ELLIPSIS if len(content) > radius * 2 else "")

    start = max(0, idx - radius)
    end = min(len(content), idx + radius)
    prefix = ELLIPSIS if start > 0 else ""
    suffix = ELLIPSIS if end < len(content) else ""
    return prefix + content[start:end] + suffix


def clamp_top_k(value: Any) -> int:
    """Clamp a requested result count to [1, 10].

    Absent, non-numeric, NaN, boolean and zero values fall back to 5.
    Infinities are numeric and clamp to the nearest bound.
    Fractional values are truncated after clamping.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_TOP_K
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TOP_K
    if math.isnan(number) or number == 0:
        return DEFAULT_TOP_K
    return int(max(MIN_TOP_K, min(MAX_TOP_K, number)))


def rank_documents(
    documents: Sequence[Document],
    query: str,
    top_k: int = DEFAULT_TOP_K,
) -> List[ScoredResult]:
    """Rank ``documents`` against ``query``.

    Only documents with a positive score are returned, highest first.
    Equal scores keep collection order.

    Args:
        documents: The knowledge base collection.
        query: Free-text query.
        top_k: Maximum number of results (already clamped by the caller).

    Returns:
        Up to ``top_k`` scored results.
    """
    tokens = tokenize(query)
    if not tokens:
        return []

    scored = [(doc, score_document(doc, tokens)) for doc in documents]
    positive = [(doc, score) for doc, score in scored if score > 0]
    # sorted() is stable, so ties keep their original order
    ranked = sorted(positive, key=lambda pair: -pair[1])[:top_k]

    return [
        ScoredResult(
            id=doc.id,
            title=doc.title,
            url=doc.url,
            score=score,
            snippet=make_snippet(doc.content, tokens),
            tags=list(doc.tags),
        )
        for doc, score in ranked
    ]
