"""
Corpus ingestion: load source files into documents and embedded chunks.

Each corpus collection points at a folder (``metadata.folder``, relative to
the base directory). Supported files under it are hashed, extracted,
chunked, embedded and written as one documents row plus its
document_chunks rows. A file whose checksum is already recorded for the
corpus is skipped, so re-running ingestion only picks up new or changed
files.
"""

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from supabase import AsyncClient

from app.core.chunking import DEFAULT_CHUNK_SIZE, approximate_tokens, chunk_text, default_overlap
from app.core.embeddings import QueryEmbedder
from app.core.logging import get_logger
from app.core.schemas_training import CorpusCollection, DocumentSidecar, Domain
from app.db.corpus import (
    delete_document,
    find_document_by_checksum,
    insert_document,
    insert_document_chunks,
    list_corpora,
)

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = frozenset({".txt", ".md", ".pdf", ".html", ".htm"})


@dataclass
class IngestSummary:
    """What one corpus ingestion pass did."""

    corpus_name: str
    files_seen: int = 0
    ingested: list[str] = field(default_factory=list)
    skipped_existing: list[str] = field(default_factory=list)
    skipped_empty: list[str] = field(default_factory=list)
    chunks_written: int = 0


# ============================================================================
# File helpers
# ============================================================================


def walk_files(root: Path) -> list[Path]:
    """Supported files under ``root`` in path order, skipping dotfiles and dot-directories."""
    files = []
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS:
            files.append(path)
    return files


def read_sidecar(path: Path) -> DocumentSidecar:
    """Read ``<file>.json`` beside ``path``; missing or unreadable sidecars give defaults."""
    sidecar_path = path.with_suffix(".json")
    if not sidecar_path.exists():
        return DocumentSidecar()
    try:
        return DocumentSidecar.model_validate(json.loads(sidecar_path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        logger.warning(f"Ignoring invalid sidecar {sidecar_path}: {e}")
        return DocumentSidecar()


def extract_text(path: Path) -> str:
    """Plain text of a supported file. HTML is kept as markup."""
    if path.suffix.lower() == ".pdf":
        import fitz  # PyMuPDF, only needed for PDF corpora

        with fitz.open(str(path)) as pdf:
            return "\n".join(page.get_text() for page in pdf)
    return path.read_text(encoding="utf-8", errors="replace")


def file_checksum(path: Path) -> str:
    """SHA-256 hex digest of the file's bytes."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


# ============================================================================
# Ingestion
# ============================================================================


class CorpusIngestor:
    """Writes the files of corpus collections into the vector store."""

    def __init__(
        self,
        supabase: AsyncClient,
        embedder: QueryEmbedder,
        base_dir: Path,
        dry_run: bool = False,
    ):
        self.supabase = supabase
        self.embedder = embedder
        self.base_dir = base_dir
        self.dry_run = dry_run

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.base_dir).as_posix()
        except ValueError:
            return path.as_posix()

    async def ingest_corpus(self, corpus: CorpusCollection) -> IngestSummary:
        """Ingest every new file in the corpus folder."""
        summary = IngestSummary(corpus_name=corpus.name)

        if not corpus.folder:
            logger.warning(f"Skipping corpus {corpus.name!r}: no folder in metadata")
            return summary

        folder = Path(corpus.folder)
        if not folder.is_absolute():
            folder = self.base_dir / folder
        if not folder.is_dir():
            logger.warning(f"Skipping corpus {corpus.name!r}: folder {folder} not found")
            return summary

        files = walk_files(folder)
        summary.files_seen = len(files)
        logger.info(
            f"[{corpus.domain.value}] {corpus.name}: {len(files)} files in {folder}"
            + (" (dry run)" if self.dry_run else "")
        )

        for path in files:
            await self.ingest_file(corpus, path, summary)

        logger.info(
            f"[{corpus.domain.value}] {corpus.name}: ingested {len(summary.ingested)}, "
            f"skipped {len(summary.skipped_existing)} existing and "
            f"{len(summary.skipped_empty)} empty, {summary.chunks_written} chunks"
        )
        return summary

    async def ingest_file(
        self, corpus: CorpusCollection, path: Path, summary: IngestSummary
    ) -> UUID | None:
        """
        Ingest one file. Returns the new document ID, or None when skipped.

        The document row is written only after every chunk is embedded, and
        is deleted again if its chunks cannot be saved.
        """
        relative_path = self._relative(path)
        checksum = file_checksum(path)
        sidecar = read_sidecar(path)
        title = sidecar.title or path.stem

        if await find_document_by_checksum(self.supabase, corpus.id, checksum):
            logger.info(f"Skipping {title!r}: already ingested")
            summary.skipped_existing.append(relative_path)
            return None

        text = extract_text(path)
        chunk_size = sidecar.chunk_size or corpus.default_chunk_size or DEFAULT_CHUNK_SIZE
        overlap = sidecar.chunk_overlap if sidecar.chunk_overlap is not None else default_overlap(chunk_size)
        chunks = chunk_text(
            text,
            max_chars=chunk_size,
            overlap=overlap,
            metadata={"file_path": relative_path, "chunk_size": chunk_size, "chunk_overlap": overlap},
        )
        if not chunks:
            logger.warning(f"No text extracted from {relative_path}")
            summary.skipped_empty.append(relative_path)
            return None

        logger.info(f"Ingesting {title!r} ({len(chunks)} chunks)")
        if self.dry_run:
            summary.ingested.append(relative_path)
            return None

        embeddings = await self.embedder.embed_texts([chunk["content"] for chunk in chunks])

        document_id = await insert_document(
            self.supabase,
            {
                "corpus_id": str(corpus.id),
                "domain": corpus.domain.value,
                "title": title,
                "doc_type": sidecar.doc_type or corpus.source_type,
                "jurisdiction": sidecar.jurisdiction,
                "discipline": sidecar.discipline,
                "source_url": sidecar.source_url,
                "file_path": relative_path,
                "checksum": checksum,
                "ingestion_status": "ingested",
                "token_count": approximate_tokens(text),
                "metadata": {**sidecar.metadata, "auto_generated": True},
            },
        )

        rows: list[dict[str, Any]] = [
            {
                "chunk_index": chunk["chunk_index"],
                "content": chunk["content"],
                "embedding": embedding,
                "token_count": approximate_tokens(chunk["content"]),
                "metadata": chunk["metadata"],
            }
            for chunk, embedding in zip(chunks, embeddings)
        ]
        try:
            written = await insert_document_chunks(self.supabase, document_id, rows)
        except Exception:
            logger.error(
                f"Removing document {document_id} after its chunks failed to save",
                extra={"document_id": str(document_id)},
            )
            await delete_document(self.supabase, document_id)
            raise

        summary.ingested.append(relative_path)
        summary.chunks_written += written
        return document_id


async def ingest_corpora(
    supabase: AsyncClient,
    embedder: QueryEmbedder,
    base_dir: Path,
    domain: Domain | None = None,
    name: str | None = None,
    dry_run: bool = False,
) -> list[IngestSummary]:
    """Ingest every corpus collection matching ``domain`` / ``name``."""
    corpora = await list_corpora(supabase, domain=domain, name=name)
    if not corpora:
        logger.info("No corpus collections matched the filters")
        return []

    ingestor = CorpusIngestor(supabase, embedder, base_dir, dry_run=dry_run)
    summaries = []
    for corpus in corpora:
        summaries.append(await ingestor.ingest_corpus(corpus))
    return summaries
