from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pytest
from docx import Document as WordDocument

from docqa import documents
from docqa.errors import ContentUnavailableError


class _FakePage:
    def __init__(self, text: str) -> None:
        self._text = text

    def extract_text(self) -> str:
        return self._text


def _make_reader(page_texts: list[str]):
    class _FakeReader:
        def __init__(self, _stream: BytesIO) -> None:
            self.pages = [_FakePage(text) for text in page_texts]

    return _FakeReader


def _docx_bytes(*paragraphs: str) -> bytes:
    document = WordDocument()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_normalize_text_collapses_whitespace() -> None:
    assert documents._normalize_text("  alpha\n\tbeta   gamma  ") == "alpha beta gamma"


def test_has_enough_text_counts_alphanumeric_characters() -> None:
    assert documents._has_enough_text("A1 B2 C3", min_chars=6)
    assert not documents._has_enough_text("---", min_chars=1)


def test_resolve_tesseract_cmd_prefers_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TESSERACT_CMD", "/opt/tesseract/bin/tesseract")
    assert documents._resolve_tesseract_cmd() == "/opt/tesseract/bin/tesseract"


def test_resolve_tesseract_cmd_uses_detected_default(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    fake_path = tmp_path / "tesseract.exe"
    fake_path.write_text("", encoding="utf-8")
    monkeypatch.delenv("TESSERACT_CMD", raising=False)
    monkeypatch.setattr(documents, "DEFAULT_TESSERACT_PATHS", (fake_path,))

    assert documents._resolve_tesseract_cmd() == str(fake_path)


def test_mime_type_for_known_and_unknown_extensions() -> None:
    assert documents.mime_type_for("Report.PDF") == "application/pdf"
    assert documents.mime_type_for("notes.txt") == "text/plain"
    assert documents.mime_type_for("archive.zip") == "application/octet-stream"


def test_document_id_is_derived_from_content() -> None:
    first = documents.document_id_for(b"same bytes")

    assert first == documents.document_id_for(b"same bytes")
    assert first != documents.document_id_for(b"other bytes")
    assert len(first) == documents.DOCUMENT_ID_LENGTH


def test_extract_text_from_docx_reads_paragraphs_and_table_cells() -> None:
    document = WordDocument()
    document.add_paragraph("Paragraph text")
    table = document.add_table(rows=1, cols=1)
    table.cell(0, 0).text = "Table text"

    buffer = BytesIO()
    document.save(buffer)

    text = documents.extract_text_from_docx(buffer.getvalue())

    assert "Paragraph text" in text
    assert "Table text" in text


def test_extract_text_from_file_dispatches_by_extension(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(documents, "extract_text_from_docx", lambda _bytes: "docx-text")
    monkeypatch.setattr(
        documents,
        "extract_text_from_pdf",
        lambda _bytes, enable_ocr=True: f"pdf-text-{enable_ocr}",
    )

    assert documents.extract_text_from_file("notes.docx", b"x") == "docx-text"
    assert (
        documents.extract_text_from_file("scan.PDF", b"x", enable_pdf_ocr=False)
        == "pdf-text-False"
    )
    assert documents.extract_text_from_file("readme.md", b"  # Title  ") == "# Title"


def test_extract_text_from_file_rejects_unsupported_extension() -> None:
    with pytest.raises(ValueError, match="Unsupported file type"):
        documents.extract_text_from_file("data.csv", b"hello")


def test_extract_text_from_pdf_skips_ocr_when_direct_text_is_sufficient(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        documents,
        "PdfReader",
        _make_reader([
            "This page contains enough extracted text to avoid OCR 1234567890.",
            "Second page also has direct content 1234567890.",
        ]),
    )

    def fail_ocr(**_kwargs: object) -> dict[int, str]:
        raise AssertionError("OCR should not be called for text-rich pages")

    monkeypatch.setattr(documents, "_ocr_pdf_pages", fail_ocr)

    extracted = documents.extract_text_from_pdf(b"pdf-bytes", enable_ocr=True)

    assert "avoid OCR" in extracted
    assert "Second page" in extracted


def test_extract_text_from_pdf_uses_ocr_for_low_text_pages(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        documents,
        "PdfReader",
        _make_reader(["", "this page has enough direct text to stay as-is 1234567890"]),
    )
    monkeypatch.setenv("OCR_LANGUAGE", "deu")

    captured: dict[str, object] = {}

    def fake_ocr(
        file_bytes: bytes,
        page_indices: list[int],
        language: str,
        scale: float,
    ) -> dict[int, str]:
        captured["page_indices"] = page_indices
        captured["language"] = language
        captured["scale"] = scale
        return {0: "OCR recovered text"}

    monkeypatch.setattr(documents, "_ocr_pdf_pages", fake_ocr)

    extracted = documents.extract_text_from_pdf(b"pdf-bytes", enable_ocr=True, ocr_scale=3.0)

    assert captured == {"page_indices": [0], "language": "deu", "scale": 3.0}
    assert extracted == "OCR recovered text\nthis page has enough direct text to stay as-is 1234567890"


def test_extract_text_from_pdf_raises_when_ocr_fails_and_no_text_available(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(documents, "PdfReader", _make_reader(["", "   "]))
    monkeypatch.setattr(
        documents,
        "_ocr_pdf_pages",
        lambda **_kwargs: (_ for _ in ()).throw(RuntimeError("OCR unavailable")),
    )

    with pytest.raises(RuntimeError, match="OCR unavailable"):
        documents.extract_text_from_pdf(b"pdf-bytes", enable_ocr=True)


def test_extract_text_from_pdf_keeps_partial_direct_text_when_ocr_fails(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(documents, "PdfReader", _make_reader(["Readable direct page 12345", ""]))
    monkeypatch.setattr(
        documents,
        "_ocr_pdf_pages",
        lambda **_kwargs: (_ for _ in ()).throw(RuntimeError("OCR unavailable")),
    )

    assert documents.extract_text_from_pdf(b"pdf-bytes", enable_ocr=True) == (
        "Readable direct page 12345"
    )


def test_uploaded_source_fetches_registered_document() -> None:
    source = documents.UploadedDocumentSource()
    payload = _docx_bytes("Cats are mammals.", "Fish are not mammals.")

    document_id = source.register("animals.docx", payload, owner_id="user-1")
    document = source.fetch(document_id, "user-1")

    assert document.document_id == document_id
    assert document.display_name == "animals.docx"
    assert document.mime_type == documents.MIME_TYPES[".docx"]
    assert document.full_text == "Cats are mammals.\nFish are not mammals."
    assert document.owner_id == "user-1"


def test_uploaded_source_forwards_ocr_flag(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_extract(file_name: str, file_bytes: bytes, enable_pdf_ocr: bool) -> str:
        captured["enable_pdf_ocr"] = enable_pdf_ocr
        return "text"

    monkeypatch.setattr(documents, "extract_text_from_file", fake_extract)
    source = documents.UploadedDocumentSource(enable_pdf_ocr=False)

    source.fetch(source.register("scan.pdf", b"pdf", owner_id="user-1"), "user-1")

    assert captured["enable_pdf_ocr"] is False


def test_uploaded_source_rejects_unknown_document() -> None:
    with pytest.raises(ContentUnavailableError, match="Unknown document"):
        documents.UploadedDocumentSource().fetch("missing", "user-1")


def test_uploaded_source_wraps_extraction_failures() -> None:
    source = documents.UploadedDocumentSource()
    document_id = source.register("table.csv", b"a,b,c", owner_id="user-1")

    with pytest.raises(ContentUnavailableError, match="table.csv") as excinfo:
        source.fetch(document_id, "user-1")

    assert isinstance(excinfo.value.__cause__, ValueError)


def test_uploaded_source_keeps_same_bytes_separate_per_owner() -> None:
    source = documents.UploadedDocumentSource()

    alice_id = source.register("alice-notes.txt", b"Cats are mammals.", owner_id="alice")
    bob_id = source.register("bob-notes.txt", b"Cats are mammals.", owner_id="bob")

    assert alice_id == bob_id
    assert len(source) == 2
    assert source.fetch(alice_id, "alice").display_name == "alice-notes.txt"
    assert source.fetch(bob_id, "bob").display_name == "bob-notes.txt"
    assert source.fetch(bob_id, "bob").owner_id == "bob"


def test_uploaded_source_rejects_fetch_by_other_owner() -> None:
    source = documents.UploadedDocumentSource()
    document_id = source.register("private.txt", b"Salary figures.", owner_id="alice")

    with pytest.raises(ContentUnavailableError, match="Unknown document"):
        source.fetch(document_id, "mallory")


def test_uploaded_source_evicts_least_recently_used_upload() -> None:
    source = documents.UploadedDocumentSource(max_uploads=2)
    first = source.register("first.txt", b"first", owner_id="user-1")
    second = source.register("second.txt", b"second", owner_id="user-1")

    source.fetch(first, "user-1")
    third = source.register("third.txt", b"third", owner_id="user-1")

    assert len(source) == 2
    assert source.fetch(first, "user-1").full_text == "first"
    assert source.fetch(third, "user-1").full_text == "third"
    with pytest.raises(ContentUnavailableError, match="Unknown document"):
        source.fetch(second, "user-1")


def test_uploaded_source_without_bound_keeps_every_upload() -> None:
    source = documents.UploadedDocumentSource(max_uploads=None)
    for index in range(5):
        source.register(f"{index}.txt", str(index).encode(), owner_id="user-1")

    assert len(source) == 5


def test_uploaded_source_rejects_non_positive_bound() -> None:
    with pytest.raises(ValueError, match="max_uploads"):
        documents.UploadedDocumentSource(max_uploads=0)
