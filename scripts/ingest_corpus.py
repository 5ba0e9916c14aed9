#!/usr/bin/env python3
"""
Ingest corpus collection folders into documents and embedded chunks.

Reads corpus_collections (optionally one domain or one corpus by name),
walks each collection's ``metadata.folder`` and stores every new
.txt/.md/.pdf/.html file as a document with embedded chunks.

Usage:
    python scripts/ingest_corpus.py [--domain legal|academic] [--name "Corpus Name"] [--dry-run]

Options:
    --domain: Limit ingestion to one domain
    --name: Limit ingestion to one corpus (exact name)
    --dry-run: Scan and chunk files without embedding or writing anything
    --base-dir: Directory corpus folders are relative to (default: current directory)
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from openai import AsyncOpenAI

from app.core.config import get_settings
from app.core.corpus_ingest import ingest_corpora
from app.core.embeddings import QueryEmbedder
from app.core.logging import get_logger
from app.core.provider_retry import RetryPolicy
from app.core.schemas_training import Domain
from app.core.training_errors import TrainingPipelineError
from app.db.supabase_client import create_supabase

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest corpus folders into the vector store")
    parser.add_argument(
        "--domain",
        type=Domain,
        choices=list(Domain),
        metavar="{legal,academic}",
        help="Limit ingestion to one domain",
    )
    parser.add_argument("--name", type=str, help="Limit ingestion to one corpus (exact name)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan and chunk files without embedding or writing anything",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=Path.cwd(),
        help="Directory corpus folders are relative to (default: current directory)",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not settings.OPENAI_API_KEY and not args.dry_run:
        logger.error("OPENAI_API_KEY is required to embed corpus chunks")
        return 1

    supabase = await create_supabase(settings)
    openai_client = (
        AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=0,
        )
        if settings.OPENAI_API_KEY
        else None
    )
    embedder = QueryEmbedder(
        client=openai_client,
        model=settings.EMBEDDING_MODEL,
        dimension=settings.EMBEDDING_DIM,
        policy=RetryPolicy.from_settings(settings),
    )

    summaries = await ingest_corpora(
        supabase,
        embedder,
        base_dir=args.base_dir,
        domain=args.domain,
        name=args.name,
        dry_run=args.dry_run,
    )

    logger.info("=" * 60)
    for summary in summaries:
        logger.info(
            f"{summary.corpus_name}: {len(summary.ingested)} ingested, "
            f"{len(summary.skipped_existing)} already present, "
            f"{summary.chunks_written} chunks"
        )
    logger.info("Ingestion complete")
    return 0


def main() -> None:
    args = parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except TrainingPipelineError as e:
        logger.error(f"Ingestion failed: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
