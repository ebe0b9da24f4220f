"""Failure conditions raised by the document collaborators."""

from __future__ import annotations


class DocQAError(Exception):
    """Base class for errors surfaced to the UI layer."""


class ContentUnavailableError(DocQAError):
    """Document text could not be produced (unknown id, unsupported format, parse failure)."""


class GenerationUnavailableError(DocQAError):
    """The text-generation backend is not configured or did not return an answer."""
