"""Prompt assembly and the OpenAI-backed answer generator."""

from __future__ import annotations

from typing import Sequence

from openai import OpenAI

from docqa.config import Settings
from docqa.errors import GenerationUnavailableError
from docqa.index import IndexEntry
from docqa.retrieval import SearchResult


SYSTEM_PROMPT = """
You are a careful assistant for question-answering over uploaded documents.
Only use the provided document content.
If the content does not contain the answer, say you do not know.
""".strip()

HISTORY_WINDOW = 8


def build_prompt(question: str, entry: IndexEntry, results: Sequence[SearchResult]) -> str:
    """Assemble document metadata, relevant chunks, key topics and the question."""

    lines = [
        "You are an AI assistant helping users understand documents. "
        "Please answer the following question about the document content.",
        "",
        "Document Information:",
        f"- File Name: {entry.display_name or 'unknown'}",
        f"- File Type: {entry.mime_type or 'unknown'}",
    ]
    if results:
        lines.append(f"- Relevant Content Chunks Used: {len(results)}")
    if entry.keywords:
        lines.append(f"- Key Topics: {', '.join(entry.keywords)}")

    content = "\n\n".join(result.chunk for result in results)
    lines.extend(
        [
            "",
            "Relevant Document Content:",
            content,
            "",
            f"User Question: {question}",
            "",
            "Please provide a clear, helpful, and accurate answer based on the relevant "
            "document content. If the question cannot be answered from the provided "
            "content, please say so. Keep your response concise but informative.",
        ]
    )
    return "\n".join(lines)


class AnswerGenerator:
    """Send assembled prompts to the OpenAI chat completions API."""

    def __init__(self, settings: Settings) -> None:
        self.model = settings.openai_model
        self._client = OpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None

    @property
    def configured(self) -> bool:
        return self._client is not None

    def generate(self, prompt: str, history: Sequence[dict[str, str]] = ()) -> str:
        """Return the model's answer to `prompt`.

        Raises `GenerationUnavailableError` when no API key is configured, the
        request fails, or the model returns no content.
        """

        if self._client is None:
            raise GenerationUnavailableError("OPENAI_API_KEY is not set")

        messages: list[dict[str, str]] = [{"role": "system", "content": SYSTEM_PROMPT}]

        # A short conversational window keeps follow-up questions in context
        # without sending unbounded history to the model.
        for message in history[-HISTORY_WINDOW:]:
            role = message.get("role")
            content = message.get("content", "").strip()
            if role in {"user", "assistant"} and content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.2,
            )
        except Exception as exc:
            raise GenerationUnavailableError(f"OpenAI request failed: {exc}") from exc

        answer = response.choices[0].message.content if response.choices else None
        if not answer or not answer.strip():
            raise GenerationUnavailableError("OpenAI returned an empty answer")
        return answer.strip()


def fallback_answer(
    results: Sequence[SearchResult],
    display_name: str = "",
    configured: bool = False,
) -> str:
    """Deterministic reply built from the top retrieved excerpts.

    `configured` tells whether an API key is set, so the reply only asks for
    one when it is actually missing.
    """

    if not results:
        return "I could not find relevant text in the document for that question."

    lines = ["I found relevant passages, but no answer could be generated."]
    if configured:
        lines.append("The answer service did not respond; try again in a moment.")
    else:
        lines.append("Set OPENAI_API_KEY in your .env file for full conversational answers.")
    lines.extend(["", "Closest excerpts:"])
    source = display_name or "document"
    for result in results[:3]:
        excerpt = result.chunk.replace("\n", " ").strip()
        if len(excerpt) > 320:
            excerpt = f"{excerpt[:317]}..."
        lines.append(
            f"- {source} (chunk {result.position + 1}, score={result.score:.3f}): {excerpt}"
        )

    return "\n".join(lines)
