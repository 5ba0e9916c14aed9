"""Generated documents and the source citations that back them."""

from typing import Any
from uuid import UUID

from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.schemas_training import Citation, Domain, SourceCitationRecord
from app.core.training_errors import CitationWriteError, PersistenceError

logger = get_logger(__name__)


async def insert_generated_document(
    supabase: AsyncClient,
    session_id: UUID,
    domain: Domain,
    title: str,
    doc_type: str,
    content: str,
    metadata: dict[str, Any] | None = None,
) -> UUID:
    """
    Create a generated document in ``draft`` / ``unverified``.

    Raises:
        PersistenceError: If the insert returns no row or fails
    """
    try:
        response = (
            await supabase.table("generated_documents")
            .insert(
                {
                    "session_id": str(session_id),
                    "draft_template_id": None,
                    "domain": domain.value,
                    "title": title,
                    "doc_type": doc_type,
                    "content": content,
                    "status": "draft",
                    "validation_status": "unverified",
                    "metadata": metadata or {},
                }
            )
            .execute()
        )
    except Exception as e:
        logger.error(
            f"Failed to create generated_document: {e}",
            extra={"session_id": str(session_id), "error_type": type(e).__name__},
        )
        raise PersistenceError("Failed to save generated document.") from e

    if not response.data:
        raise PersistenceError("Failed to save generated document.")

    document_id = UUID(response.data[0]["id"])
    logger.info(
        f"Created generated_document {document_id}",
        extra={"document_id": str(document_id), "session_id": str(session_id)},
    )
    return document_id


async def insert_source_citations(
    supabase: AsyncClient,
    document_id: UUID,
    citations: list[Citation],
) -> int:
    """
    Batch-insert citations for a document. No-op for an empty list.

    Returns:
        Number of rows written

    Raises:
        CitationWriteError: If the batch fails or writes fewer rows than sent
    """
    if not citations:
        return 0

    rows = [
        {
            "generated_document_id": str(document_id),
            "chunk_id": str(citation.chunk_id),
            "citation_label": citation.label,
            "excerpt": citation.excerpt,
        }
        for citation in citations
    ]

    try:
        response = await supabase.table("source_citations").insert(rows).execute()
    except Exception as e:
        logger.error(
            f"Failed to insert source citations: {e}",
            extra={"document_id": str(document_id), "error_type": type(e).__name__},
        )
        raise CitationWriteError("Failed to save source citations.") from e

    written = len(response.data or [])
    if written != len(rows):
        raise CitationWriteError(
            f"Saved {written} of {len(rows)} source citations."
        )

    logger.info(
        f"Inserted {written} source citations",
        extra={"document_id": str(document_id)},
    )
    return written


async def delete_generated_document(supabase: AsyncClient, document_id: UUID) -> None:
    """Delete a generated document; its citations cascade."""
    await supabase.table("generated_documents").delete().eq("id", str(document_id)).execute()
    logger.info(f"Deleted generated_document {document_id}", extra={"document_id": str(document_id)})


async def get_generated_document(supabase: AsyncClient, document_id: UUID) -> dict[str, Any] | None:
    """Get a generated document by ID."""
    response = (
        await supabase.table("generated_documents")
        .select("*")
        .eq("id", str(document_id))
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return response.data[0]


def _label_position(record: SourceCitationRecord) -> int:
    try:
        return int(record.citation_label.rsplit(" ", 1)[1])
    except (IndexError, ValueError):
        return 0


async def list_source_citations(
    supabase: AsyncClient,
    document_id: UUID,
) -> list[SourceCitationRecord]:
    """Citations of a document ordered by source number (Source 1, Source 2, ...)."""
    response = (
        await supabase.table("source_citations")
        .select("*")
        .eq("generated_document_id", str(document_id))
        .execute()
    )
    records = [SourceCitationRecord.model_validate(row) for row in response.data or []]
    # "Source 10" must sort after "Source 2", so order numerically rather than in SQL.
    return sorted(records, key=_label_position)
