"""The per-document index bundle that gets cached and queried."""

from __future__ import annotations

from dataclasses import dataclass
import time

from docqa.chunking import chunk_text
from docqa.vectorizer import build_index, extract_keywords


@dataclass(frozen=True)
class IndexEntry:
    chunks: tuple[str, ...]
    dictionary: tuple[str, ...]
    matrix: tuple[tuple[float, ...], ...]
    keywords: tuple[str, ...]
    created_at: float = 0.0
    display_name: str = ""
    mime_type: str = ""
    content_length: int = 0

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)


def process_document(
    full_text: str,
    *,
    chunk_size: int = 1000,
    overlap_words: int = 20,
    max_keywords: int = 10,
    display_name: str = "",
    mime_type: str = "",
) -> IndexEntry:
    """Chunk, vectorize and summarize one document's text."""

    chunks = chunk_text(full_text, chunk_size=chunk_size, overlap_words=overlap_words)
    dictionary, matrix = build_index(chunks)

    return IndexEntry(
        chunks=tuple(chunks),
        dictionary=dictionary,
        matrix=matrix,
        keywords=tuple(extract_keywords(full_text, max_keywords=max_keywords)),
        created_at=time.monotonic(),
        display_name=display_name,
        mime_type=mime_type,
        content_length=len(full_text),
    )
