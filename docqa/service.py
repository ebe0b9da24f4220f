"""Question answering over one document: cache, extraction, retrieval, generation."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Protocol, Sequence

from docqa.cache import DocumentIndexCache
from docqa.config import Settings
from docqa.documents import RawDocument
from docqa.errors import GenerationUnavailableError
from docqa.index import IndexEntry, process_document
from docqa.llm import build_prompt
from docqa.retrieval import SearchResult, query


LOGGER = logging.getLogger(__name__)

CHARS_PER_PAGE = 2000


class ContentSource(Protocol):
    def fetch(self, document_id: str, user_id: str) -> RawDocument: ...


class Generator(Protocol):
    def generate(self, prompt: str, history: Sequence[dict[str, str]] = ()) -> str: ...


@dataclass(frozen=True)
class Answer:
    question: str
    text: str
    results: list[SearchResult]
    entry: IndexEntry


@dataclass(frozen=True)
class BatchAnswer:
    question: str
    answer: str | None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DocumentAnalysis:
    display_name: str
    mime_type: str
    total_chunks: int
    content_length: int
    estimated_pages: int
    keywords: tuple[str, ...] = field(default_factory=tuple)


class DocumentQAService:
    """Answers questions about a document, reusing its cached index while fresh.

    The cache is injected so a single instance can be shared by every request
    for the lifetime of the process.
    """

    def __init__(
        self,
        cache: DocumentIndexCache,
        source: ContentSource,
        generator: Generator,
        settings: Settings | None = None,
    ) -> None:
        self.cache = cache
        self.source = source
        self.generator = generator
        self.settings = settings or Settings()

    def _build_entry(self, document_id: str, user_id: str) -> IndexEntry:
        LOGGER.info("Processing document %s (not cached or expired)", document_id)
        document = self.source.fetch(document_id, user_id)
        entry = process_document(
            document.full_text,
            chunk_size=self.settings.chunk_size,
            overlap_words=self.settings.overlap_words,
            max_keywords=self.settings.max_keywords,
            display_name=document.display_name,
            mime_type=document.mime_type,
        )
        LOGGER.info("Indexed %s into %d chunk(s)", document.display_name, entry.chunk_count)
        return entry

    def load_index(self, document_id: str, user_id: str) -> IndexEntry:
        entry = self.cache.get(document_id, user_id)
        if entry is not None:
            LOGGER.debug("Using cached index for %s", document_id)
            return entry
        return self.cache.get_or_compute(
            document_id,
            user_id,
            lambda: self._build_entry(document_id, user_id),
        )

    def retrieve(self, question: str, entry: IndexEntry) -> list[SearchResult]:
        results = query(question, entry, top_k=self.settings.top_k)
        LOGGER.debug(
            "Using %d relevant chunk(s) out of %d", len(results), entry.chunk_count
        )
        return results

    def ask(
        self,
        document_id: str,
        user_id: str,
        question: str,
        history: Sequence[dict[str, str]] = (),
    ) -> Answer:
        """Answer `question`; content and generation errors propagate unchanged."""

        entry = self.load_index(document_id, user_id)
        results = self.retrieve(question, entry)
        prompt = build_prompt(question, entry, results)
        text = self.generator.generate(prompt, history)
        return Answer(question=question, text=text, results=results, entry=entry)

    def ask_many(
        self,
        document_id: str,
        user_id: str,
        questions: Sequence[str],
    ) -> list[BatchAnswer]:
        """Answer each question independently; one generation failure does not stop the rest."""

        entry = self.load_index(document_id, user_id)
        answers: list[BatchAnswer] = []
        for question in questions:
            prompt = build_prompt(question, entry, self.retrieve(question, entry))
            try:
                text = self.generator.generate(prompt)
            except GenerationUnavailableError as exc:
                LOGGER.warning("Generation failed for %r: %s", question, exc)
                answers.append(BatchAnswer(question=question, answer=None, error=str(exc)))
            else:
                answers.append(BatchAnswer(question=question, answer=text))
        return answers

    def analyze(self, document_id: str, user_id: str) -> DocumentAnalysis:
        entry = self.load_index(document_id, user_id)
        return DocumentAnalysis(
            display_name=entry.display_name,
            mime_type=entry.mime_type,
            total_chunks=entry.chunk_count,
            content_length=entry.content_length,
            estimated_pages=math.ceil(entry.content_length / CHARS_PER_PAGE),
            keywords=entry.keywords,
        )
