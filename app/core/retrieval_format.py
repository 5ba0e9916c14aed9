"""Format retrieved chunks for LLM context injection and for citation records.

``format_context`` and ``format_citations`` assign source numbers the same
way: chunk at position i is "Source {i+1}". The primary model is told to cite
``[Source N]``, so N must point at the same chunk in both outputs.
"""

from __future__ import annotations

import re

from app.core.schemas_training import Citation, RetrievedChunk

NO_SOURCES_CONTEXT = "No sources were retrieved for this query."
UNTITLED = "Untitled"
DEFAULT_EXCERPT_CHARS = 400

_SOURCE_TAG = re.compile(r"\[Source (\d+)\]")


def source_label(index: int) -> str:
    """Label for the chunk at zero-based ``index``."""
    return f"Source {index + 1}"


def format_context(chunks: list[RetrievedChunk]) -> str:
    """Render chunks as one labeled text block, or the no-sources sentinel."""
    if not chunks:
        return NO_SOURCES_CONTEXT

    return "\n\n".join(
        f"{source_label(i)}: {chunk.document_title or UNTITLED}\n{chunk.content}"
        for i, chunk in enumerate(chunks)
    )


def format_citations(
    chunks: list[RetrievedChunk],
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
) -> list[Citation]:
    """Map each chunk to a citation at the same source position."""
    return [
        Citation(
            label=source_label(i),
            chunk_id=chunk.chunk_id,
            document_id=chunk.document_id,
            title=chunk.document_title or UNTITLED,
            excerpt=chunk.content[:excerpt_chars],
        )
        for i, chunk in enumerate(chunks)
    ]


def cited_labels(text: str) -> list[str]:
    """``[Source N]`` tags used in ``text``, deduplicated in first-seen order."""
    seen: list[str] = []
    for match in _SOURCE_TAG.finditer(text):
        label = f"Source {match.group(1)}"
        if label not in seen:
            seen.append(label)
    return seen


def out_of_range_labels(text: str, source_count: int) -> list[str]:
    """Cited labels that do not correspond to any retrieved chunk."""
    return [
        label for label in cited_labels(text)
        if not 1 <= int(label.split(" ", 1)[1]) <= source_count
    ]
