"""API routes for training sessions and the retrieval-augmented training run."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from supabase import AsyncClient

from app.core.auth_middleware import AuthContext, require_auth
from app.core.logging import get_logger
from app.core.schemas_training import (
    CitationListResponse,
    CreateTrainingSessionRequest,
    RunTrainingRequest,
    SessionRunListResponse,
    TrainingRunResult,
    TrainingSessionResponse,
)
from app.core.training_deps import TrainingDependencies
from app.core.training_errors import (
    ConfigurationError,
    DocumentNotFound,
    InvalidTransition,
    NotFoundError,
    ProviderError,
    QueryError,
    SessionBusy,
    SessionNotFound,
    StoreUnavailable,
    SynthesisError,
    TrainingPipelineError,
)
from app.db.generated_documents import get_generated_document, list_source_citations
from app.db.session_runs import list_session_runs
from app.db.training_sessions import create_session, get_session
from app.graphs.training_run_graph import run_training_session

logger = get_logger(__name__)
router = APIRouter(prefix="/training-sessions", tags=["training_sessions"])


def get_supabase_client(request: Request) -> AsyncClient:
    """Supabase client created at application startup."""
    supabase = getattr(request.app.state, "supabase", None)
    if supabase is None:
        raise HTTPException(status_code=503, detail="Supabase client missing")
    return supabase


def get_training_dependencies(request: Request) -> TrainingDependencies:
    """Pipeline collaborators created at application startup."""
    deps = getattr(request.app.state, "training_deps", None)
    if deps is None:
        raise HTTPException(status_code=503, detail="Training pipeline not configured")
    return deps


def status_code_for(error: TrainingPipelineError) -> int:
    """HTTP status for a pipeline error."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (SessionBusy, InvalidTransition)):
        return 409
    if isinstance(error, ConfigurationError):
        return 503
    if isinstance(error, (ProviderError, StoreUnavailable, QueryError, SynthesisError)):
        return 502
    # PersistenceError and anything unclassified
    return 500


@router.post("", status_code=201, response_model=TrainingSessionResponse)
async def create_session_endpoint(
    request: CreateTrainingSessionRequest,
    auth: AuthContext = Depends(require_auth),
    supabase: AsyncClient = Depends(get_supabase_client),
) -> TrainingSessionResponse:
    """Create a new training session in draft."""
    try:
        session = await create_session(
            supabase,
            domain=request.domain,
            title=request.title,
            objective=request.objective,
            scheduled_for=request.scheduled_for,
        )
        return TrainingSessionResponse(session=session)
    except TrainingPipelineError as e:
        logger.error(f"Failed to create training session: {e.message}")
        raise HTTPException(status_code=status_code_for(e), detail=e.message)
    except Exception:
        logger.exception("Failed to create training session")
        raise HTTPException(status_code=500, detail="Failed to create training session")


@router.get("/{session_id}", response_model=TrainingSessionResponse)
async def get_session_endpoint(
    session_id: UUID,
    auth: AuthContext = Depends(require_auth),
    supabase: AsyncClient = Depends(get_supabase_client),
) -> TrainingSessionResponse:
    """Get training session details."""
    try:
        session = await get_session(supabase, session_id)
    except TrainingPipelineError as e:
        logger.error(f"Failed to get training session {session_id}: {e.message}")
        raise HTTPException(status_code=status_code_for(e), detail=e.message)
    except Exception:
        logger.exception(f"Failed to get training session {session_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve training session")
    if not session:
        raise HTTPException(status_code=404, detail="Training session not found")
    return TrainingSessionResponse(session=session)


@router.post("/{session_id}/run", response_model=TrainingRunResult)
async def run_session_endpoint(
    session_id: UUID,
    request: RunTrainingRequest,
    auth: AuthContext = Depends(require_auth),
    deps: TrainingDependencies = Depends(get_training_dependencies),
) -> TrainingRunResult:
    """
    Run the retrieval-augmented training pipeline for a session.

    The session is in its recovery state by the time any error response
    is returned for a failure that happened after the run started.
    """
    try:
        return await run_training_session(
            deps,
            session_id=session_id,
            prompt_template_id=request.prompt_template_id,
            query=request.query,
            additional_facts=request.additional_facts,
            reasoning_level=request.reasoning_level,
            corpus_id=request.corpus_id,
        )
    except TrainingPipelineError as e:
        logger.warning(
            f"Training run rejected: {e.message}",
            extra={"session_id": str(session_id), "error_type": type(e).__name__},
        )
        raise HTTPException(status_code=status_code_for(e), detail=e.message)


@router.get("/documents/{document_id}/citations", response_model=CitationListResponse)
async def list_citations_endpoint(
    document_id: UUID,
    auth: AuthContext = Depends(require_auth),
    supabase: AsyncClient = Depends(get_supabase_client),
) -> CitationListResponse:
    """Citations for a generated document in source order."""
    try:
        document = await get_generated_document(supabase, document_id)
        if not document:
            raise DocumentNotFound("Generated document not found")
        citations = await list_source_citations(supabase, document_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception:
        logger.exception(f"Failed to list citations for document {document_id}")
        raise HTTPException(status_code=500, detail="Failed to list citations")
    return CitationListResponse(document_id=document_id, citations=citations)


@router.get("/{session_id}/runs", response_model=SessionRunListResponse)
async def list_runs_endpoint(
    session_id: UUID,
    auth: AuthContext = Depends(require_auth),
    supabase: AsyncClient = Depends(get_supabase_client),
) -> SessionRunListResponse:
    """Run history of a session, newest first."""
    try:
        session = await get_session(supabase, session_id)
        if not session:
            raise SessionNotFound("Training session not found")
        runs = await list_session_runs(supabase, session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception:
        logger.exception(f"Failed to list runs for session {session_id}")
        raise HTTPException(status_code=500, detail="Failed to list training runs")
    return SessionRunListResponse(session_id=session_id, runs=runs)
