"""Corpus collections, source documents and their embedded chunks."""

from typing import Any
from uuid import UUID

from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.schemas_training import CorpusCollection, Domain
from app.core.training_errors import PersistenceError

logger = get_logger(__name__)


async def list_corpora(
    supabase: AsyncClient,
    domain: Domain | None = None,
    name: str | None = None,
) -> list[CorpusCollection]:
    """List corpus collections, optionally filtered by domain and exact name."""
    query = supabase.table("corpus_collections").select("*")
    if domain:
        query = query.eq("domain", domain.value)
    if name:
        query = query.eq("name", name)
    response = await query.order("name").execute()
    return [CorpusCollection.model_validate(row) for row in response.data or []]


async def find_document_by_checksum(
    supabase: AsyncClient, corpus_id: UUID, checksum: str
) -> UUID | None:
    """ID of the document in ``corpus_id`` whose source file hashes to ``checksum``."""
    response = (
        await supabase.table("documents")
        .select("id")
        .eq("corpus_id", str(corpus_id))
        .eq("checksum", checksum)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None
    return UUID(response.data[0]["id"])


async def insert_document(supabase: AsyncClient, data: dict[str, Any]) -> UUID:
    """
    Create a documents row.

    Raises:
        PersistenceError: If the insert returns no row or fails
    """
    try:
        response = await supabase.table("documents").insert(data).execute()
    except Exception as e:
        logger.error(
            f"Failed to create document {data.get('title')!r}: {e}",
            extra={"error_type": type(e).__name__},
        )
        raise PersistenceError("Failed to save corpus document.") from e

    if not response.data:
        raise PersistenceError("Failed to save corpus document.")

    document_id = UUID(response.data[0]["id"])
    logger.info(f"Created document {document_id}", extra={"document_id": str(document_id)})
    return document_id


async def insert_document_chunks(
    supabase: AsyncClient,
    document_id: UUID,
    chunks: list[dict[str, Any]],
) -> int:
    """
    Batch insert chunk rows for a document.

    Raises:
        PersistenceError: If the insert fails or writes fewer rows than given
    """
    if not chunks:
        return 0

    rows = [{"document_id": str(document_id), **chunk} for chunk in chunks]
    try:
        response = await supabase.table("document_chunks").insert(rows).execute()
    except Exception as e:
        logger.error(
            f"Failed to insert chunks for document {document_id}: {e}",
            extra={"document_id": str(document_id), "error_type": type(e).__name__},
        )
        raise PersistenceError("Failed to save document chunks.") from e

    written = len(response.data or [])
    if written != len(rows):
        raise PersistenceError(
            f"Saved {written} of {len(rows)} chunks for document {document_id}."
        )
    return written


async def delete_document(supabase: AsyncClient, document_id: UUID) -> None:
    """Delete a document; its chunks go with it."""
    await supabase.table("documents").delete().eq("id", str(document_id)).execute()
