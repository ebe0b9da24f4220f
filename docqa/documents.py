"""Text extraction for uploaded documents and the in-process document source.

The retrieval core only ever sees `RawDocument.full_text`; everything
format-specific stays in this module and surfaces a single
`ContentUnavailableError` when a document cannot be turned into text.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
import hashlib
from io import BytesIO
import logging
import os
from pathlib import Path
import re
import threading

from docx import Document
from pypdf import PdfReader

from docqa.errors import ContentUnavailableError


LOGGER = logging.getLogger(__name__)

WHITESPACE_PATTERN = re.compile(r"\s+")
MIME_TYPES = {
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
}
SUPPORTED_EXTENSIONS = frozenset(MIME_TYPES)
DOCUMENT_ID_LENGTH = 16
DEFAULT_OCR_LANGUAGE = "eng"
DEFAULT_OCR_SCALE = 2.0
MIN_DIRECT_PDF_TEXT_CHARS = 20
DEFAULT_TESSERACT_PATHS = (
    Path("C:/Program Files/Tesseract-OCR/tesseract.exe"),
    Path("C:/Program Files (x86)/Tesseract-OCR/tesseract.exe"),
)
TESSERACT_MISSING_MESSAGE = (
    "Tesseract OCR engine is not installed or not on PATH. "
    "Install Tesseract and optionally set TESSERACT_CMD in .env."
)


@dataclass(frozen=True)
class RawDocument:
    document_id: str
    display_name: str
    mime_type: str
    full_text: str
    owner_id: str


def _normalize_text(value: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", value).strip()


def _has_enough_text(value: str, min_chars: int = MIN_DIRECT_PDF_TEXT_CHARS) -> bool:
    return sum(character.isalnum() for character in value) >= min_chars


def _resolve_tesseract_cmd() -> str:
    configured = os.getenv("TESSERACT_CMD", "").strip()
    if configured:
        return configured
    for candidate in DEFAULT_TESSERACT_PATHS:
        if candidate.exists():
            return str(candidate)
    return "tesseract"


def mime_type_for(file_name: str) -> str:
    return MIME_TYPES.get(Path(file_name).suffix.lower(), "application/octet-stream")


def document_id_for(file_bytes: bytes) -> str:
    """Content-derived identifier, so re-uploading the same bytes reuses the cached index."""

    return hashlib.sha256(file_bytes).hexdigest()[:DOCUMENT_ID_LENGTH]


def extract_text_from_docx(file_bytes: bytes) -> str:
    document = Document(BytesIO(file_bytes))
    blocks = [_normalize_text(paragraph.text) for paragraph in document.paragraphs]

    for table in document.tables:
        for row in table.rows:
            blocks.extend(_normalize_text(cell.text) for cell in row.cells)

    return "\n".join(block for block in blocks if block)


def extract_text_from_plain(file_bytes: bytes) -> str:
    return file_bytes.decode("utf-8", errors="replace").strip()


def _ocr_pdf_pages(
    file_bytes: bytes,
    page_indices: list[int],
    language: str,
    scale: float,
) -> dict[int, str]:
    """Render the given pages and run Tesseract on them."""

    try:
        import pypdfium2 as pdfium
        import pytesseract
        from pytesseract import TesseractNotFoundError
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise RuntimeError("OCR support requires pypdfium2 and pytesseract.") from exc

    pytesseract.pytesseract.tesseract_cmd = _resolve_tesseract_cmd()
    try:
        pytesseract.get_tesseract_version()
    except Exception as exc:  # pragma: no cover - machine specific
        raise RuntimeError(TESSERACT_MISSING_MESSAGE) from exc

    recovered: dict[int, str] = {}
    pdf = pdfium.PdfDocument(file_bytes)
    try:
        for page_index in page_indices:
            page = pdf.get_page(page_index)
            try:
                bitmap = page.render(scale=scale)
                try:
                    image = bitmap.to_pil()
                finally:
                    bitmap.close()
            finally:
                page.close()

            try:
                text = _normalize_text(pytesseract.image_to_string(image, lang=language))
            except TesseractNotFoundError as exc:  # pragma: no cover - machine specific
                raise RuntimeError(TESSERACT_MISSING_MESSAGE) from exc
            if text:
                recovered[page_index] = text
    finally:
        pdf.close()

    return recovered


def extract_text_from_pdf(
    file_bytes: bytes,
    enable_ocr: bool = True,
    ocr_language: str | None = None,
    ocr_scale: float = DEFAULT_OCR_SCALE,
) -> str:
    """Read direct PDF text, falling back to OCR for pages with almost no text.

    An OCR failure is only fatal when no page produced any direct text.
    """

    reader = PdfReader(BytesIO(file_bytes))
    page_texts = [_normalize_text(page.extract_text() or "") for page in reader.pages]
    sparse_pages = [
        index for index, text in enumerate(page_texts) if enable_ocr and not _has_enough_text(text)
    ]

    if sparse_pages:
        language = (ocr_language or os.getenv("OCR_LANGUAGE", "")).strip() or DEFAULT_OCR_LANGUAGE
        try:
            recovered = _ocr_pdf_pages(
                file_bytes=file_bytes,
                page_indices=sparse_pages,
                language=language,
                scale=ocr_scale,
            )
        except RuntimeError:
            if not any(_has_enough_text(text, min_chars=1) for text in page_texts):
                raise
            LOGGER.warning("OCR failed; keeping direct text for %d page(s)", len(page_texts))
        else:
            for page_index, text in recovered.items():
                if _has_enough_text(text, min_chars=1):
                    page_texts[page_index] = text

    return "\n".join(text for text in page_texts if text)


def extract_text_from_file(
    file_name: str,
    file_bytes: bytes,
    enable_pdf_ocr: bool = True,
) -> str:
    extension = Path(file_name).suffix.lower()

    if extension == ".docx":
        return extract_text_from_docx(file_bytes)
    if extension == ".pdf":
        return extract_text_from_pdf(file_bytes, enable_ocr=enable_pdf_ocr)
    if extension in {".txt", ".md"}:
        return extract_text_from_plain(file_bytes)

    supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
    raise ValueError(f"Unsupported file type '{extension}'. Supported types: {supported}")


@dataclass(frozen=True)
class _Upload:
    file_name: str
    file_bytes: bytes
    owner_id: str


class UploadedDocumentSource:
    """Registry of uploaded files that hands out `RawDocument`s on demand.

    Uploads are keyed by `(document_id, owner_id)`, so the same bytes uploaded
    by two users are two separate uploads and only the owner can fetch one.
    Text is extracted on every `fetch`; callers cache the processed result,
    not the raw text. At most `max_uploads` uploads are kept, least recently
    used first out.
    """

    def __init__(self, enable_pdf_ocr: bool = True, max_uploads: int | None = 128) -> None:
        if max_uploads is not None and max_uploads <= 0:
            raise ValueError("max_uploads must be greater than zero")

        self.enable_pdf_ocr = enable_pdf_ocr
        self.max_uploads = max_uploads
        self._lock = threading.Lock()
        self._uploads: OrderedDict[tuple[str, str], _Upload] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._uploads)

    def register(self, file_name: str, file_bytes: bytes, owner_id: str) -> str:
        document_id = document_id_for(file_bytes)
        key = (document_id, owner_id)
        with self._lock:
            self._uploads[key] = _Upload(file_name, file_bytes, owner_id)
            self._uploads.move_to_end(key)
            if self.max_uploads is not None:
                while len(self._uploads) > self.max_uploads:
                    (evicted_id, _), _ = self._uploads.popitem(last=False)
                    LOGGER.debug("Dropped upload %s from the registry", evicted_id)
        return document_id

    def fetch(self, document_id: str, user_id: str) -> RawDocument:
        """Extract the text of `document_id` as uploaded by `user_id`."""

        key = (document_id, user_id)
        with self._lock:
            upload = self._uploads.get(key)
            if upload is not None:
                self._uploads.move_to_end(key)
        if upload is None:
            raise ContentUnavailableError(f"Unknown document '{document_id}'")

        try:
            text = extract_text_from_file(
                upload.file_name,
                upload.file_bytes,
                enable_pdf_ocr=self.enable_pdf_ocr,
            )
        except Exception as exc:
            LOGGER.warning("Could not extract text from %s: %s", upload.file_name, exc)
            raise ContentUnavailableError(f"Could not read '{upload.file_name}': {exc}") from exc

        return RawDocument(
            document_id=document_id,
            display_name=upload.file_name,
            mime_type=mime_type_for(upload.file_name),
            full_text=text,
            owner_id=upload.owner_id,
        )
