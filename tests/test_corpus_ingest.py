"""Tests for corpus ingestion against the fake Supabase client and a mocked embedder."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest

from app.core.corpus_ingest import (
    CorpusIngestor,
    IngestSummary,
    extract_text,
    ingest_corpora,
    read_sidecar,
    walk_files,
)
from app.core.embeddings import QueryEmbedder
from app.core.schemas_training import CorpusCollection, Domain
from app.core.training_errors import PersistenceError

DIM = 4
CASE_LAW = "corpora/legal/case_law"


@pytest.fixture
def embed_client() -> MagicMock:
    async def create(model, input):
        return SimpleNamespace(data=[SimpleNamespace(embedding=[0.5] * DIM) for _ in input])

    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=create)
    return client


@pytest.fixture
def embedder(embed_client, fast_policy) -> QueryEmbedder:
    return QueryEmbedder(embed_client, "text-embedding-3-small", DIM, fast_policy)


@pytest.fixture
def corpus(fake_supabase) -> CorpusCollection:
    row = fake_supabase.seed(
        "corpus_collections",
        {
            "domain": "legal",
            "name": "Case Law Summaries",
            "description": "Judicial opinions and digests",
            "source_type": "case",
            "access_level": "public",
            "default_chunk_size": 100,
            "metadata": {"folder": CASE_LAW},
        },
    )
    return CorpusCollection.model_validate(row)


@pytest.fixture
def case_law(tmp_path):
    folder = tmp_path / CASE_LAW
    folder.mkdir(parents=True)
    (folder / "entores.md").write_text("Acceptance by telex is complete on receipt. " * 6)
    (folder / "entores.json").write_text(
        json.dumps({"title": "Entores v Miles Far East", "jurisdiction": "UK", "metadata": {"year": 1955}})
    )
    (folder / "currie.txt").write_text("Consideration is some right, interest, profit or benefit.")
    return folder


def _ingestor(fake_supabase, embedder, tmp_path, dry_run=False) -> CorpusIngestor:
    return CorpusIngestor(fake_supabase, embedder, base_dir=tmp_path, dry_run=dry_run)


def test_walk_files_skips_hidden_and_unsupported(tmp_path):
    (tmp_path / "keep.md").write_text("x")
    (tmp_path / "keep.HTML").write_text("<p>x</p>")
    (tmp_path / ".draft.md").write_text("x")
    (tmp_path / "notes.docx").write_bytes(b"x")
    (tmp_path / "keep.json").write_text("{}")
    (tmp_path / ".cache").mkdir()
    (tmp_path / ".cache" / "old.txt").write_text("x")
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "deep.txt").write_text("x")

    names = [p.relative_to(tmp_path).as_posix() for p in walk_files(tmp_path)]

    assert names == ["keep.HTML", "keep.md", "nested/deep.txt"]


def test_read_sidecar_missing_and_invalid(tmp_path):
    source = tmp_path / "memo.md"
    source.write_text("x")

    assert read_sidecar(source).title is None

    (tmp_path / "memo.json").write_text("{not json")
    assert read_sidecar(source).metadata == {}


def test_extract_text_from_pdf(tmp_path):
    path = tmp_path / "rule.pdf"
    pdf = fitz.open()
    page = pdf.new_page()
    page.insert_text((72, 72), "Rule 12(b)(6) motion to dismiss")
    pdf.save(str(path))
    pdf.close()

    assert "Rule 12(b)(6)" in extract_text(path)


@pytest.mark.asyncio
async def test_ingest_corpus_writes_documents_and_chunks(
    fake_supabase, embedder, corpus, case_law, tmp_path
):
    summary = await _ingestor(fake_supabase, embedder, tmp_path).ingest_corpus(corpus)

    assert summary.files_seen == 2
    assert summary.ingested == [f"{CASE_LAW}/currie.txt", f"{CASE_LAW}/entores.md"]

    documents = {d["file_path"]: d for d in fake_supabase.rows("documents")}
    entores = documents[f"{CASE_LAW}/entores.md"]
    assert entores["title"] == "Entores v Miles Far East"
    assert entores["jurisdiction"] == "UK"
    assert entores["doc_type"] == "case"
    assert entores["domain"] == "legal"
    assert entores["ingestion_status"] == "ingested"
    assert entores["metadata"] == {"year": 1955, "auto_generated": True}
    assert len(entores["checksum"]) == 64
    assert documents[f"{CASE_LAW}/currie.txt"]["title"] == "currie"

    chunks = [c for c in fake_supabase.rows("document_chunks") if c["document_id"] == entores["id"]]
    # 263 chars at size 100 with overlap 20
    assert [c["chunk_index"] for c in chunks] == [0, 1, 2, 3]
    assert all(len(c["embedding"]) == DIM for c in chunks)
    assert chunks[0]["metadata"] == {
        "file_path": f"{CASE_LAW}/entores.md",
        "chunk_size": 100,
        "chunk_overlap": 20,
    }
    assert summary.chunks_written == len(fake_supabase.rows("document_chunks"))


@pytest.mark.asyncio
async def test_reingest_skips_unchanged_files(fake_supabase, embedder, corpus, case_law, tmp_path):
    ingestor = _ingestor(fake_supabase, embedder, tmp_path)
    await ingestor.ingest_corpus(corpus)
    (case_law / "currie.txt").write_text("Consideration must move from the promisee.")

    summary = await ingestor.ingest_corpus(corpus)

    assert summary.skipped_existing == [f"{CASE_LAW}/entores.md"]
    assert summary.ingested == [f"{CASE_LAW}/currie.txt"]
    assert len(fake_supabase.rows("documents")) == 3


@pytest.mark.asyncio
async def test_sidecar_chunking_overrides(fake_supabase, embedder, corpus, case_law, tmp_path):
    (case_law / "currie.json").write_text(json.dumps({"chunk_size": 20, "chunk_overlap": 0}))

    await _ingestor(fake_supabase, embedder, tmp_path).ingest_corpus(corpus)

    currie = next(d for d in fake_supabase.rows("documents") if d["title"] == "currie")
    chunks = [c for c in fake_supabase.rows("document_chunks") if c["document_id"] == currie["id"]]
    assert [len(c["content"]) for c in chunks] == [20, 20, 17]


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(fake_supabase, embedder, embed_client, corpus, case_law, tmp_path):
    summary = await _ingestor(fake_supabase, embedder, tmp_path, dry_run=True).ingest_corpus(corpus)

    assert len(summary.ingested) == 2
    assert fake_supabase.rows("documents") == []
    assert fake_supabase.rows("document_chunks") == []
    embed_client.embeddings.create.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_file_is_skipped(fake_supabase, embedder, corpus, case_law, tmp_path):
    (case_law / "blank.txt").write_text(" \r\n ")

    summary = await _ingestor(fake_supabase, embedder, tmp_path).ingest_corpus(corpus)

    assert summary.skipped_empty == [f"{CASE_LAW}/blank.txt"]
    assert len(fake_supabase.rows("documents")) == 2


@pytest.mark.asyncio
async def test_missing_folder_is_skipped(fake_supabase, embedder, corpus, tmp_path):
    summary = await _ingestor(fake_supabase, embedder, tmp_path).ingest_corpus(corpus)

    assert summary.files_seen == 0
    assert fake_supabase.calls == []


@pytest.mark.asyncio
async def test_chunk_write_failure_removes_document(
    fake_supabase, embedder, corpus, case_law, tmp_path
):
    fake_supabase.short_writes["document_chunks"] = 1
    path = case_law / "currie.txt"

    with pytest.raises(PersistenceError):
        await _ingestor(fake_supabase, embedder, tmp_path).ingest_file(
            corpus, path, IngestSummary(corpus_name=corpus.name)
        )

    assert fake_supabase.rows("documents") == []


@pytest.mark.asyncio
async def test_ingest_corpora_filters_by_domain(fake_supabase, embedder, corpus, case_law, tmp_path):
    fake_supabase.seed(
        "corpus_collections",
        {"domain": "academic", "name": "Rubrics & Assessments", "metadata": {"folder": "corpora/academic/rubrics"}},
    )

    summaries = await ingest_corpora(fake_supabase, embedder, tmp_path, domain=Domain.LEGAL)

    assert [s.corpus_name for s in summaries] == ["Case Law Summaries"]
    assert {d["corpus_id"] for d in fake_supabase.rows("documents")} == {str(corpus.id)}


@pytest.mark.asyncio
async def test_ingest_corpora_no_match(fake_supabase, embedder, tmp_path):
    assert await ingest_corpora(fake_supabase, embedder, tmp_path, name="Nope") == []
