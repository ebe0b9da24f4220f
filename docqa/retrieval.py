"""Shared tokenizer and cosine-similarity ranking over TF-IDF chunk vectors.

Indexing, keyword extraction and query vectorization all go through
`tokenize`, so index-time and query-time terms always come from the same
vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
import re
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from docqa.index import IndexEntry


TOKEN_PATTERN = re.compile(r"\w+")
ALPHABETIC_PATTERN = re.compile(r"[a-z]+")
MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
        "do", "does", "did", "will", "would", "could", "should", "may", "might", "can",
        "this", "that", "these", "those",
    }
)


def tokenize(text: str) -> list[str]:
    """Tokenize text into normalized terms for indexing and querying."""

    terms: list[str] = []
    for match in TOKEN_PATTERN.finditer(text.lower()):
        term = match.group(0)
        if (
            len(term) >= MIN_TOKEN_LENGTH
            and ALPHABETIC_PATTERN.fullmatch(term)
            and term not in STOPWORDS
        ):
            terms.append(term)
    return terms


@dataclass(frozen=True)
class SearchResult:
    """Single retrieval hit with its corresponding relevance score."""

    chunk: str
    score: float
    position: int


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Return the cosine of the angle between two vectors, 0.0 if either is all zeros."""

    if len(left) != len(right):
        raise ValueError(f"vector lengths differ: {len(left)} != {len(right)}")

    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))

    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot / (left_norm * right_norm)


def query_vector(query: str, dictionary: Sequence[str]) -> list[float]:
    """Binary presence vector of the query terms, aligned to `dictionary`."""

    present = set(tokenize(query))
    return [1.0 if term in present else 0.0 for term in dictionary]


def find_relevant_chunks(
    query: str,
    chunks: Sequence[str],
    dictionary: Sequence[str],
    matrix: Sequence[Sequence[float]],
    top_k: int = 3,
) -> list[SearchResult]:
    """Return the `top_k` chunks most similar to `query`, best first.

    Every chunk is scored, including those with no shared terms, so the result
    always holds `min(top_k, len(chunks))` items. Equal scores keep chunk order.
    """

    if top_k < 0:
        raise ValueError("top_k cannot be negative")
    if len(matrix) != len(chunks):
        raise ValueError("matrix must have one row per chunk")

    vector = query_vector(query, dictionary)
    scored = [
        SearchResult(chunk=chunk, score=cosine_similarity(vector, row), position=position)
        for position, (chunk, row) in enumerate(zip(chunks, matrix))
    ]

    scored.sort(key=lambda result: result.score, reverse=True)
    return scored[:top_k]


def query(question: str, entry: IndexEntry, top_k: int = 3) -> list[SearchResult]:
    """Rank the chunks of a processed document against `question`."""

    return find_relevant_chunks(
        question,
        entry.chunks,
        entry.dictionary,
        entry.matrix,
        top_k=top_k,
    )
