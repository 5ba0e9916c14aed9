"""Vector retrieval over the document chunk store.

A single RPC (``match_document_chunks``) does the similarity search in
Postgres/pgvector. Rows come back ordered by descending score; the order
of rows with equal scores is whatever the index scan yields and is not
stable across calls. Chunks from the same source document are kept.

Usage:
    retriever = VectorRetriever(supabase, policy)
    chunks = await retriever.retrieve(vector, Domain.LEGAL, limit=6)
"""

from __future__ import annotations

import asyncio
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.provider_retry import RetryPolicy, call_with_retry
from app.core.schemas_training import Domain, RetrievedChunk
from app.core.training_errors import QueryError, StoreUnavailable

logger = get_logger(__name__)

MATCH_RPC = "match_document_chunks"
MIN_LIMIT = 1
MAX_LIMIT = 20


class VectorRetriever:
    """Ranked chunk search scoped by domain and, optionally, corpus."""

    def __init__(self, supabase: AsyncClient, policy: RetryPolicy | None = None):
        self.supabase = supabase
        self.policy = policy or RetryPolicy()

    async def retrieve(
        self,
        vector: list[float],
        domain: Domain,
        corpus_id: UUID | None = None,
        limit: int = 6,
    ) -> list[RetrievedChunk]:
        """
        Return up to ``limit`` chunks ranked by relevance.

        Raises:
            StoreUnavailable: If the store cannot be reached
            QueryError: If the RPC fails or returns rows that do not validate
        """
        match_count = min(max(limit, MIN_LIMIT), MAX_LIMIT)
        params = {
            "query_embedding": vector,
            "match_count": match_count,
            "domain_filter": domain.value,
            "corpus_filter": str(corpus_id) if corpus_id else None,
        }

        try:
            response = await call_with_retry(
                lambda: self.supabase.rpc(MATCH_RPC, params).execute(),
                label="retrieve_chunks",
                policy=self.policy,
            )
        except APIError as e:
            logger.error(f"{MATCH_RPC} rejected query: {e}")
            raise QueryError(f"Chunk search failed: {e.message or 'query error'}") from e
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.error(f"{MATCH_RPC} unreachable: {e}")
            raise StoreUnavailable("Vector store is unavailable.") from e

        rows = response.data or []
        try:
            chunks = [RetrievedChunk.model_validate(row) for row in rows]
        except ValidationError as e:
            raise QueryError(f"Chunk search returned malformed rows: {e.error_count()} errors") from e

        # The RPC orders by distance; re-sort so the contract holds for any backend.
        # sorted() is stable, so equal scores keep the store's order.
        chunks = sorted(chunks, key=lambda c: c.score, reverse=True)[:match_count]

        logger.info(
            f"Retrieved {len(chunks)} chunks for domain={domain.value}",
            extra={"extra_data": {"corpus_id": params["corpus_filter"], "limit": match_count}},
        )
        return chunks
