"""Sentence-aligned chunking with word overlap between neighbouring chunks."""

from __future__ import annotations

import re


SENTENCE_DELIMITER_PATTERN = re.compile(r"[.!?]+")


def split_sentences(text: str) -> list[str]:
    """Split on `.`, `!` and `?` runs, dropping the delimiters and empty pieces."""

    sentences: list[str] = []
    for piece in SENTENCE_DELIMITER_PATTERN.split(text):
        sentence = piece.strip()
        if sentence:
            sentences.append(sentence)
    return sentences


def _tail_words(text: str, count: int) -> str:
    if count <= 0:
        return ""
    return " ".join(text.split(" ")[-count:])


def chunk_text(text: str, chunk_size: int = 1000, overlap_words: int = 20) -> list[str]:
    """Group whole sentences into chunks of at most `chunk_size` characters.

    When a chunk is closed, the next one starts with the last `overlap_words`
    words of the closed chunk so context carries across the boundary. A
    sentence longer than `chunk_size` is never split; it becomes a chunk of its
    own.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if overlap_words < 0:
        raise ValueError("overlap_words cannot be negative")

    chunks: list[str] = []
    buffer = ""

    for sentence in split_sentences(text):
        if len(buffer) + len(sentence) > chunk_size:
            if buffer:
                chunks.append(buffer.strip())
                overlap = _tail_words(buffer, overlap_words)
                buffer = f"{overlap} {sentence}" if overlap else sentence
            else:
                buffer = sentence
        else:
            buffer = f"{buffer} {sentence}" if buffer else sentence

    if buffer.strip():
        chunks.append(buffer.strip())

    return chunks
