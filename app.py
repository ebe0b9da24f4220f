from __future__ import annotations

import uuid

import streamlit as st

from docqa.cache import DocumentIndexCache
from docqa.config import configure_logging, load_settings
from docqa.documents import UploadedDocumentSource
from docqa.errors import ContentUnavailableError, GenerationUnavailableError
from docqa.llm import AnswerGenerator, fallback_answer
from docqa.retrieval import SearchResult
from docqa.service import DocumentQAService


@st.cache_resource
def _get_service() -> DocumentQAService:
    """One service, cache and upload registry for the whole process."""

    settings = load_settings()
    configure_logging(settings.log_level)
    cache = DocumentIndexCache(
        ttl_seconds=settings.cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
    )
    return DocumentQAService(
        cache=cache,
        source=UploadedDocumentSource(max_uploads=settings.cache_max_entries),
        generator=AnswerGenerator(settings),
        settings=settings,
    )


def _initialize_state() -> None:
    if "user_id" not in st.session_state:
        st.session_state.user_id = uuid.uuid4().hex
    if "documents" not in st.session_state:
        st.session_state.documents = {}
    if "document_id" not in st.session_state:
        st.session_state.document_id = None
    if "messages" not in st.session_state:
        st.session_state.messages = []


def _sources_for(results: list[SearchResult]) -> list[dict[str, str | float]]:
    sources: list[dict[str, str | float]] = []
    for result in results:
        preview = result.chunk.replace("\n", " ").strip()
        if len(preview) > 180:
            preview = f"{preview[:177]}..."
        sources.append(
            {"chunk": f"chunk {result.position + 1}", "score": result.score, "preview": preview}
        )
    return sources


def _show_sources(sources: list[dict[str, str | float]]) -> None:
    if not sources:
        return

    with st.expander("Sources", expanded=False):
        for source in sources:
            st.write(f"`{source['chunk']}` (score {source['score']:.3f})")
            st.caption(source["preview"])


def _render_history() -> None:
    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.markdown(message["content"])
            if message["role"] == "assistant":
                _show_sources(message.get("sources", []))


def _register_uploads(service: DocumentQAService) -> None:
    uploaded_files = st.session_state.get("uploaded_files", [])
    if not uploaded_files:
        st.sidebar.warning("Upload at least one .docx, .pdf or .txt file first.")
        return

    user_id = st.session_state.user_id
    failed_files: list[str] = []

    with st.sidebar.spinner("Reading and indexing documents..."):
        for uploaded_file in uploaded_files:
            document_id = service.source.register(
                uploaded_file.name, uploaded_file.getvalue(), owner_id=user_id
            )
            try:
                entry = service.load_index(document_id, user_id)
            except ContentUnavailableError:
                failed_files.append(uploaded_file.name)
                continue
            if entry.chunk_count == 0:
                failed_files.append(uploaded_file.name)
                continue
            st.session_state.documents[document_id] = uploaded_file.name

    indexed = len(uploaded_files) - len(failed_files)
    if indexed == 0:
        st.sidebar.error("No readable text found in the selected files.")
        return

    st.sidebar.success(f"Indexed {indexed} file(s).")
    if failed_files:
        st.sidebar.warning(f"Could not parse: {', '.join(failed_files)}")


def _answer(service: DocumentQAService, question: str) -> tuple[str, list[SearchResult]]:
    document_id = st.session_state.document_id
    user_id = st.session_state.user_id
    history = st.session_state.messages[:-1]

    try:
        answer = service.ask(document_id, user_id, question, history=history)
    except GenerationUnavailableError:
        entry = service.load_index(document_id, user_id)
        results = service.retrieve(question, entry)
        configured = getattr(service.generator, "configured", False)
        return fallback_answer(results, entry.display_name, configured=configured), results
    return answer.text, answer.results


def _show_analysis(service: DocumentQAService) -> None:
    analysis = service.analyze(st.session_state.document_id, st.session_state.user_id)
    st.sidebar.caption(
        f"{analysis.total_chunks} chunk(s), ~{analysis.estimated_pages} page(s). "
        f"Key topics: {', '.join(analysis.keywords) or 'none'}"
    )


def main() -> None:
    st.set_page_config(page_title="Document Q&A", page_icon=":books:", layout="wide")
    st.title("Document Q&A")
    st.caption("Upload a document and ask questions about its content.")

    _initialize_state()
    service = _get_service()

    st.sidebar.header("Documents")
    st.sidebar.file_uploader(
        "Upload documents",
        type=["docx", "pdf", "txt", "md"],
        accept_multiple_files=True,
        key="uploaded_files",
    )
    st.sidebar.button(
        "Process documents",
        use_container_width=True,
        on_click=_register_uploads,
        args=(service,),
    )

    documents: dict[str, str] = st.session_state.documents
    if documents:
        selected = st.sidebar.selectbox(
            "Ask about",
            options=list(documents),
            format_func=documents.get,
        )
        if selected != st.session_state.document_id:
            st.session_state.document_id = selected
            st.session_state.messages = []
        try:
            _show_analysis(service)
        except ContentUnavailableError as exc:
            st.sidebar.error(str(exc))

    if st.sidebar.button("Clear chat", use_container_width=True):
        st.session_state.messages = []
        st.sidebar.success("Chat history cleared.")

    if st.session_state.document_id is None:
        st.info("Upload and process a document to start asking questions.")

    _render_history()

    question = st.chat_input("Ask a question about the selected document...")
    if not question:
        return

    if st.session_state.document_id is None:
        st.warning("Please upload and process a document first.")
        return

    st.session_state.messages.append({"role": "user", "content": question})
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        with st.spinner("Searching the document and drafting an answer..."):
            try:
                answer, results = _answer(service, question)
            except ContentUnavailableError as exc:
                st.error(str(exc))
                return

        st.markdown(answer)
        sources = _sources_for(results)
        _show_sources(sources)

    st.session_state.messages.append(
        {"role": "assistant", "content": answer, "sources": sources}
    )


if __name__ == "__main__":
    main()
