"""OpenAI embeddings for training queries and corpus chunks, with dimension validation."""

from openai import AsyncOpenAI, OpenAIError

from app.core.logging import get_logger
from app.core.provider_retry import TRANSIENT_ERRORS, RetryPolicy, call_with_retry
from app.core.training_errors import ProviderError, ProviderUnavailable

logger = get_logger(__name__)


class QueryEmbedder:
    """Turns text into embedding vectors: one per query, or batches for ingestion.

    Every call is a fresh remote request; nothing is cached.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None,
        model: str,
        dimension: int,
        policy: RetryPolicy | None = None,
    ):
        self.client = client
        self.model = model
        self.dimension = dimension
        self.policy = policy or RetryPolicy()

    async def embed(self, text: str) -> list[float]:
        """
        Embed one piece of text.

        Args:
            text: Non-empty query text (validated by the caller)

        Returns:
            Embedding vector of length ``self.dimension``

        Raises:
            ProviderUnavailable: If no embedding client is configured
            ProviderError: If the call fails or returns no usable embedding
        """
        if self.client is None:
            raise ProviderUnavailable("OpenAI client is not configured.")

        client = self.client
        try:
            response = await call_with_retry(
                lambda: client.embeddings.create(model=self.model, input=text),
                label="embed_query",
                policy=self.policy,
            )
        except (OpenAIError, *TRANSIENT_ERRORS) as e:
            logger.error(f"Failed to generate query embedding: {e}")
            raise ProviderError(f"Embedding request failed: {type(e).__name__}") from e

        data = getattr(response, "data", None) or []
        if not data or not getattr(data[0], "embedding", None):
            raise ProviderError("Embedding provider returned no embedding.")

        embedding = list(data[0].embedding)
        if len(embedding) != self.dimension:
            raise ProviderError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}"
            )

        logger.debug(
            f"Generated query embedding using {self.model}",
            extra={"extra_data": {"model": self.model, "chars": len(text)}},
        )
        return embedding

    async def embed_texts(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        """
        Embed many texts, ``batch_size`` per request, preserving order.

        Raises:
            ProviderUnavailable: If no embedding client is configured
            ProviderError: If a call fails or a batch comes back short or malformed
        """
        if not texts:
            return []
        if self.client is None:
            raise ProviderUnavailable("OpenAI client is not configured.")

        client = self.client
        embeddings: list[list[float]] = []
        for offset in range(0, len(texts), batch_size):
            batch = texts[offset : offset + batch_size]
            try:
                response = await call_with_retry(
                    lambda: client.embeddings.create(model=self.model, input=batch),
                    label="embed_texts",
                    policy=self.policy,
                )
            except (OpenAIError, *TRANSIENT_ERRORS) as e:
                logger.error(f"Failed to generate embeddings: {e}")
                raise ProviderError(f"Embedding request failed: {type(e).__name__}") from e

            data = getattr(response, "data", None) or []
            if len(data) != len(batch):
                raise ProviderError(
                    f"Embedding provider returned {len(data)} embeddings for {len(batch)} texts."
                )
            for i, item in enumerate(data):
                embedding = list(getattr(item, "embedding", None) or [])
                if len(embedding) != self.dimension:
                    raise ProviderError(
                        f"Embedding dimension mismatch for text {offset + i}: "
                        f"expected {self.dimension}, got {len(embedding)}"
                    )
                embeddings.append(embedding)

        logger.info(f"Generated {len(embeddings)} embeddings using {self.model}")
        return embeddings
