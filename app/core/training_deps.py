"""Explicitly constructed collaborators for one training pipeline run."""

from dataclasses import dataclass

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from supabase import AsyncClient

from app.chains.summarize_context import ContextSummarizer
from app.chains.synthesize_analysis import AnalysisSynthesizer
from app.core.config import Settings
from app.core.embeddings import QueryEmbedder
from app.core.provider_retry import RetryPolicy
from app.core.retrieval import VectorRetriever
from app.core.training_errors import ProviderUnavailable


@dataclass
class TrainingDependencies:
    """Everything the pipeline talks to. Tests build this with fakes."""

    settings: Settings
    supabase: AsyncClient
    embedder: QueryEmbedder
    retriever: VectorRetriever
    summarizer: ContextSummarizer
    synthesizer: AnalysisSynthesizer

    def ensure_configured(self) -> None:
        """Raise ProviderUnavailable if any provider client is missing."""
        if self.embedder.client is None:
            raise ProviderUnavailable("OpenAI client not configured.")
        if self.summarizer.client is None:
            raise ProviderUnavailable(f"{self.summarizer.provider} client not configured.")
        if self.synthesizer.client is None:
            raise ProviderUnavailable("OpenAI client not configured.")


def _summarizer_client(settings: Settings) -> AsyncOpenAI | AsyncAnthropic | None:
    if settings.SUMMARIZER_PROVIDER == "anthropic":
        if not settings.ANTHROPIC_API_KEY:
            return None
        return AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=0,
        )
    if not settings.GROQ_API_KEY:
        return None
    return AsyncOpenAI(
        api_key=settings.GROQ_API_KEY,
        base_url=settings.GROQ_BASE_URL,
        timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        max_retries=0,
    )


def build_training_dependencies(settings: Settings, supabase: AsyncClient) -> TrainingDependencies:
    """
    Construct provider clients from settings.

    Missing API keys leave the matching client as None; the pipeline reports
    that as ProviderUnavailable before touching any session.
    """
    policy = RetryPolicy.from_settings(settings)

    # SDK-level retries are disabled; call_with_retry owns the retry policy.
    openai_client = (
        AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            max_retries=0,
        )
        if settings.OPENAI_API_KEY
        else None
    )

    return TrainingDependencies(
        settings=settings,
        supabase=supabase,
        embedder=QueryEmbedder(
            client=openai_client,
            model=settings.EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIM,
            policy=policy,
        ),
        retriever=VectorRetriever(supabase, policy=policy),
        summarizer=ContextSummarizer(
            provider=settings.SUMMARIZER_PROVIDER,
            client=_summarizer_client(settings),
            model=settings.SUMMARIZER_MODEL,
            max_tokens=settings.SUMMARIZER_MAX_TOKENS,
            policy=policy,
        ),
        synthesizer=AnalysisSynthesizer(
            client=openai_client,
            model=settings.TRAINING_MODEL,
            max_output_tokens=settings.TRAINING_MAX_OUTPUT_TOKENS,
            policy=policy,
        ),
    )
