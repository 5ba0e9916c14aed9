"""Pytest configuration and fixtures."""

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.chains.summarize_context import ContextSummarizer
from app.chains.synthesize_analysis import AnalysisSynthesizer
from app.core.config import Settings
from app.core.embeddings import QueryEmbedder
from app.core.provider_retry import RetryPolicy
from app.core.retrieval import VectorRetriever
from app.core.training_deps import TrainingDependencies
from tests.fakes.factories import chat_reply, embedding_response, responses_reply
from tests.fakes.fake_supabase import FakeSupabase


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["TRAINING_ENGINE_ENV"] = "test"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        SUPABASE_URL="https://test.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="test-key",
        OPENAI_API_KEY="test-openai-key",
        GROQ_API_KEY="test-groq-key",
        TRAINING_ENGINE_ENV="test",
        TRAINING_SUCCESS_STATUS="needs_input",
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(timeout=5.0, max_retries=0, initial_delay=0.0)


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def seeded(fake_supabase: FakeSupabase) -> SimpleNamespace:
    """A draft legal session and an analysis template."""
    session = fake_supabase.seed(
        "training_sessions",
        {
            "domain": "legal",
            "title": "Contract Formation Drill",
            "objective": "Practice offer/acceptance issue spotting",
            "status": "draft",
            "scheduled_for": None,
            "started_at": None,
            "completed_at": None,
            "created_at": "2026-01-05T10:00:00+00:00",
        },
    )
    template = fake_supabase.seed(
        "prompt_templates",
        {
            "name": "Legal IRAC Analysis",
            "instructions": "Analyze using IRAC. Cite every rule.",
            "template_kind": "analysis",
            "domain": "legal",
            "is_active": True,
        },
    )
    return SimpleNamespace(session=session, template=template)


@pytest.fixture
def openai_client() -> MagicMock:
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=embedding_response())
    client.responses.create = AsyncMock(return_value=responses_reply())
    return client


@pytest.fixture
def groq_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=chat_reply())
    return client


@pytest.fixture
def training_deps(
    settings: Settings,
    fake_supabase: FakeSupabase,
    openai_client: MagicMock,
    groq_client: MagicMock,
    fast_policy: RetryPolicy,
) -> TrainingDependencies:
    return TrainingDependencies(
        settings=settings,
        supabase=fake_supabase,
        embedder=QueryEmbedder(openai_client, "text-embedding-3-small", 1536, fast_policy),
        retriever=VectorRetriever(fake_supabase, policy=fast_policy),
        summarizer=ContextSummarizer("groq", groq_client, "llama-3.3-70b-versatile", 1200, fast_policy),
        synthesizer=AnalysisSynthesizer(openai_client, "gpt-5.1", 2000, fast_policy),
    )
