"""Pydantic schemas for training sessions, retrieval and generated documents."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# ============================================================================
# Enums
# ============================================================================


class Domain(str, Enum):
    """Subject-matter partition for corpora, sessions and retrieval."""
    LEGAL = "legal"
    ACADEMIC = "academic"


class SessionStatus(str, Enum):
    """Lifecycle status of a training session."""
    DRAFT = "draft"              # Created, never run
    IN_PROGRESS = "in_progress"  # Owned by a running pipeline
    NEEDS_INPUT = "needs_input"  # Recovery/retry state
    COMPLETED = "completed"      # Terminal success state


class TemplateKind(str, Enum):
    """Kind of document a prompt template produces."""
    ANALYSIS = "analysis"
    DRAFTING = "drafting"
    VALIDATION = "validation"
    GRADING = "grading"


# ============================================================================
# Stored records
# ============================================================================


class TrainingSession(BaseModel):
    """A training session row."""

    id: UUID
    domain: Domain
    title: str
    objective: str | None = None
    status: SessionStatus = SessionStatus.DRAFT
    scheduled_for: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


class PromptTemplate(BaseModel):
    """A prompt template row (read-only for the pipeline)."""

    id: UUID
    name: str
    instructions: str
    template_kind: TemplateKind
    domain: Domain
    is_active: bool = True


class CorpusCollection(BaseModel):
    """A corpus_collections row; ``metadata.folder`` locates its source files."""

    id: UUID
    domain: Domain
    name: str
    description: str | None = None
    source_type: str = "reference"
    access_level: str = "public"
    default_chunk_size: int | None = None
    metadata: dict[str, Any] | None = None

    @property
    def folder(self) -> str | None:
        return (self.metadata or {}).get("folder")


class DocumentSidecar(BaseModel):
    """Optional ``<file>.json`` next to a corpus file overriding its defaults."""

    title: str | None = None
    doc_type: str | None = None
    jurisdiction: str | None = None
    discipline: str | None = None
    source_url: str | None = None
    chunk_size: int | None = Field(None, gt=0)
    chunk_overlap: int | None = Field(None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievedChunk(BaseModel):
    """A ranked chunk returned by the match_document_chunks RPC."""

    chunk_id: UUID
    document_id: UUID
    document_title: str | None = None
    document_type: str | None = None
    corpus_id: UUID | None = None
    score: float
    content: str
    metadata: dict[str, Any] | None = None


class Citation(BaseModel):
    """A citation derived from a retrieved chunk at a fixed source position."""

    label: str = Field(..., description="'Source N', 1-indexed in retrieval order")
    chunk_id: UUID
    document_id: UUID
    title: str
    excerpt: str


class SourceCitationRecord(BaseModel):
    """A persisted source_citations row."""

    id: UUID | None = None
    generated_document_id: UUID
    chunk_id: UUID | None = None
    citation_label: str
    excerpt: str = ""
    created_at: datetime | None = None


# ============================================================================
# Pipeline result
# ============================================================================


class TrainingRunResult(BaseModel):
    """What a successful pipeline run returns to its caller."""

    run_id: UUID
    document_id: UUID
    content: str
    retrieval: list[RetrievedChunk] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)


# ============================================================================
# API request/response schemas
# ============================================================================


class CreateTrainingSessionRequest(BaseModel):
    """Request body for creating a training session."""

    domain: Domain = Domain.LEGAL
    title: str = Field(..., description="Session title")
    objective: str = Field("", description="Free-text objective")
    scheduled_for: datetime | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("objective")
    @classmethod
    def strip_objective(cls, value: str) -> str:
        return value.strip()


class TrainingSessionResponse(BaseModel):
    """Response wrapper for a single session."""

    session: TrainingSession


class RunTrainingRequest(BaseModel):
    """Request body for running the pipeline against a session."""

    prompt_template_id: UUID
    query: str
    additional_facts: str | None = None
    reasoning_level: int | None = Field(None, ge=0, le=3)
    corpus_id: UUID | None = None

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query is required")
        return value


class SessionRunRecord(BaseModel):
    """A persisted session_runs row."""

    id: UUID
    session_id: UUID
    model_name: str
    prompt_template_id: UUID | None = None
    input_payload: dict[str, Any] = Field(default_factory=dict)
    output_summary: str = ""
    output_tokens: int | None = None
    created_at: datetime | None = None


class SessionRunListResponse(BaseModel):
    """Run history of a session, newest first."""

    session_id: UUID
    runs: list[SessionRunRecord]


class CitationListResponse(BaseModel):
    """Citations of a generated document in label order."""

    document_id: UUID
    citations: list[SourceCitationRecord]
