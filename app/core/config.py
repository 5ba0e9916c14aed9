"""Configuration management for the Training Engine."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")
    DB_TIMEOUT_SECONDS: float = Field(default=15.0, description="PostgREST request timeout")

    # Provider keys. Missing keys surface as ProviderUnavailable at run time.
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    GROQ_API_KEY: str | None = Field(default=None, description="Groq API key")
    GROQ_BASE_URL: str = Field(
        default="https://api.groq.com/openai/v1",
        description="OpenAI-compatible Groq endpoint",
    )
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Environment
    TRAINING_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    ADMIN_API_KEY: str | None = Field(default=None, description="Internal tools API key")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Retrieval configuration
    RETRIEVAL_MATCH_COUNT: int = Field(default=6, description="Chunks retrieved per run")
    EXCERPT_CHARS: int = Field(default=400, description="Citation excerpt length")

    # Synthesis configuration
    SUMMARIZER_PROVIDER: Literal["groq", "anthropic"] = Field(
        default="groq", description="Provider for the fast summarizer call"
    )
    SUMMARIZER_MODEL: str = Field(
        default="llama-3.3-70b-versatile", description="Model for the summarizer call"
    )
    SUMMARIZER_MAX_TOKENS: int = Field(default=1200, description="Summarizer output cap")
    TRAINING_MODEL: str = Field(default="gpt-5.1", description="Model for the primary call")
    TRAINING_MAX_OUTPUT_TOKENS: int = Field(default=2000, description="Primary output cap")
    OUTPUT_SUMMARY_CHARS: int = Field(default=400, description="Run output_summary length")

    # Session lifecycle
    TRAINING_SUCCESS_STATUS: Literal["needs_input", "completed"] = Field(
        default="needs_input",
        description="Status a session is set to after a successful run",
    )
    RUN_LEASE_SECONDS: float = Field(
        default=900.0,
        description="Age after which an in_progress session is treated as abandoned",
    )

    # Provider call policy
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=60.0, description="Per-call timeout")
    PROVIDER_MAX_RETRIES: int = Field(default=2, description="Retries on transient errors")
    PROVIDER_RETRY_INITIAL_DELAY: float = Field(default=1.0, description="First backoff delay")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
