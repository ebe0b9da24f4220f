"""TF-IDF weighting over a chunk sequence and whole-document keyword ranking."""

from __future__ import annotations

from collections import Counter
import math
from typing import Sequence

from docqa.retrieval import tokenize


def build_index(chunks: Sequence[str]) -> tuple[tuple[str, ...], tuple[tuple[float, ...], ...]]:
    """Build the term dictionary and the TF-IDF matrix for `chunks`.

    The dictionary lists every distinct token in first-seen order. Row `i` of
    the matrix holds, for each dictionary term, its raw count in chunk `i`
    times `ln(chunk_count / (document_frequency + 1))`. Rows are not
    normalized; cosine similarity takes care of length at query time.
    """

    tokenized_chunks = [tokenize(chunk) for chunk in chunks]

    # dict keeps insertion order, which gives first-seen ordering for free.
    positions: dict[str, int] = {}
    for terms in tokenized_chunks:
        for term in terms:
            if term not in positions:
                positions[term] = len(positions)
    dictionary = tuple(positions)

    doc_frequencies: Counter[str] = Counter()
    for terms in tokenized_chunks:
        doc_frequencies.update(set(terms))

    num_chunks = len(tokenized_chunks)
    idf = [math.log(num_chunks / (doc_frequencies[term] + 1)) for term in dictionary]

    matrix: list[tuple[float, ...]] = []
    for terms in tokenized_chunks:
        row = [0.0] * len(dictionary)
        for term, count in Counter(terms).items():
            index = positions[term]
            row[index] = count * idf[index]
        matrix.append(tuple(row))

    return dictionary, tuple(matrix)


def extract_keywords(full_text: str, max_keywords: int = 10) -> list[str]:
    """Most frequent terms of the whole document, ties in first-seen order."""

    if max_keywords <= 0:
        return []
    counts = Counter(tokenize(full_text))
    # sorted() is stable, so equal counts keep first-seen order.
    return sorted(counts, key=counts.__getitem__, reverse=True)[:max_keywords]
