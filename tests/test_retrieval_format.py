"""Tests for context and citation formatting of retrieved chunks."""

from app.core.retrieval_format import (
    NO_SOURCES_CONTEXT,
    cited_labels,
    format_citations,
    format_context,
    out_of_range_labels,
)
from app.core.schemas_training import RetrievedChunk
from tests.fakes.factories import make_chunk_row


def _chunks(*rows) -> list[RetrievedChunk]:
    return [RetrievedChunk.model_validate(row) for row in rows]


def test_format_context_labels_sources_in_order():
    chunks = _chunks(
        make_chunk_row(0.9, title="Carlill v Carbolic Smoke Ball", content="Unilateral offer."),
        make_chunk_row(0.8, title="Hadley v Baxendale", content="Remoteness of damage."),
    )

    context = format_context(chunks)

    assert context == (
        "Source 1: Carlill v Carbolic Smoke Ball\nUnilateral offer."
        "\n\n"
        "Source 2: Hadley v Baxendale\nRemoteness of damage."
    )


def test_format_context_untitled_fallback():
    chunks = _chunks(make_chunk_row(0.5, title=None, content="Orphan passage."))

    assert format_context(chunks) == "Source 1: Untitled\nOrphan passage."


def test_format_context_empty_uses_sentinel():
    assert format_context([]) == NO_SOURCES_CONTEXT


def test_citations_align_with_context_labels():
    chunks = _chunks(make_chunk_row(0.9), make_chunk_row(0.7), make_chunk_row(0.6))

    context = format_context(chunks)
    citations = format_citations(chunks)

    assert [c.label for c in citations] == ["Source 1", "Source 2", "Source 3"]
    for citation, chunk in zip(citations, chunks):
        assert citation.chunk_id == chunk.chunk_id
        assert citation.document_id == chunk.document_id
        assert f"{citation.label}: {citation.title}\n{chunk.content}" in context


def test_citation_excerpt_is_truncated():
    long_content = "x" * 1000
    chunks = _chunks(make_chunk_row(0.9, content=long_content))

    citations = format_citations(chunks, excerpt_chars=400)

    assert len(citations[0].excerpt) == 400
    assert citations[0].excerpt == long_content[:400]


def test_citation_excerpt_keeps_short_content():
    chunks = _chunks(make_chunk_row(0.9, content="short"))

    assert format_citations(chunks)[0].excerpt == "short"


def test_format_citations_empty():
    assert format_citations([]) == []


def test_duplicate_source_document_keeps_both_chunks():
    shared_doc = "7b0e5c8e-1e4c-4b43-9a56-0c7e8d1a2f11"
    chunks = _chunks(
        make_chunk_row(0.9, document_id=shared_doc, content="First passage."),
        make_chunk_row(0.8, document_id=shared_doc, content="Second passage."),
    )

    citations = format_citations(chunks)

    assert len(citations) == 2
    assert {str(c.document_id) for c in citations} == {shared_doc}
    assert citations[0].chunk_id != citations[1].chunk_id


def test_cited_labels_deduplicates_in_first_seen_order():
    text = "See [Source 2] and [Source 1]; again [Source 2]."

    assert cited_labels(text) == ["Source 2", "Source 1"]


def test_out_of_range_labels():
    text = "Holding [Source 1]. Dicta [Source 4]. Nothing at [Source 0]."

    assert out_of_range_labels(text, source_count=2) == ["Source 4", "Source 0"]
    assert out_of_range_labels("[Source 1] [Source 2]", source_count=2) == []
