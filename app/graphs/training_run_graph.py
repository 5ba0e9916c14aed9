"""LangGraph pipeline that turns a training query into a cited document.

Linear flow:
  embed_query → retrieve_chunks → assemble_context → summarize_context
  → synthesize_analysis → persist_outputs

``run_training_session`` owns the session lifecycle around the graph: it
resolves the session and template, claims the session (in_progress), runs the
graph, and moves the session to the success status or, on any failure, to the
recovery status before re-raising.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from langgraph.graph import END, StateGraph

from app.chains.synthesize_analysis import SynthesisOutput, build_analysis_prompt
from app.core.logging import get_logger
from app.core.retrieval_format import format_citations, format_context, out_of_range_labels
from app.core.schemas_training import (
    Citation,
    PromptTemplate,
    RetrievedChunk,
    SessionStatus,
    TrainingRunResult,
    TrainingSession,
)
from app.core.session_state_machine import (
    begin_run,
    finish_run,
    recover,
    resolve_success_status,
)
from app.core.training_deps import TrainingDependencies
from app.core.training_errors import (
    CitationWriteError,
    InvalidTransition,
    SessionBusy,
    SessionNotFound,
    TemplateNotFound,
    TrainingPipelineError,
)
from app.db.generated_documents import (
    delete_generated_document,
    insert_generated_document,
    insert_source_citations,
)
from app.db.session_runs import insert_session_run
from app.db.training_sessions import get_prompt_template, get_session, utc_now_iso

logger = get_logger(__name__)

MAX_STEPS = 8


@dataclass
class TrainingRunState:
    """State for the training run graph."""

    # Input fields
    session: TrainingSession
    template: PromptTemplate
    query: str
    additional_facts: str | None = None
    reasoning_level: int | None = None
    corpus_id: UUID | None = None

    # Processing state
    step_count: int = 0
    embedding: list[float] = field(default_factory=list)
    chunks: list[RetrievedChunk] = field(default_factory=list)
    context: str = ""
    citations: list[Citation] = field(default_factory=list)
    summary: str = ""
    synthesis: SynthesisOutput | None = None

    # Output
    run_id: UUID | None = None
    document_id: UUID | None = None


def _check_max_steps(state: TrainingRunState) -> int:
    """Return the incremented step count, raise if exceeded."""
    step_count = state.step_count + 1
    if step_count > MAX_STEPS:
        raise RuntimeError(f"Graph exceeded max steps ({MAX_STEPS})")
    return step_count


def document_title(session: TrainingSession, generated_at: datetime | None = None) -> str:
    """Title for a generated document: session title plus generation date."""
    generated_at = generated_at or datetime.now(timezone.utc)
    return f"{session.title} – {generated_at.date().isoformat()}"


def build_training_graph(deps: TrainingDependencies):
    """Build and compile the training run graph bound to ``deps``."""
    settings = deps.settings

    async def embed_query(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        logger.info("Embedding training query", extra={"session_id": str(state.session.id)})
        embedding = await deps.embedder.embed(state.query)
        return {"embedding": embedding, "step_count": step_count}

    async def retrieve_chunks(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        chunks = await deps.retriever.retrieve(
            state.embedding,
            domain=state.session.domain,
            corpus_id=state.corpus_id,
            limit=settings.RETRIEVAL_MATCH_COUNT,
        )
        if not chunks:
            logger.warning(
                "No sources retrieved; continuing with model output alone",
                extra={"session_id": str(state.session.id)},
            )
        return {"chunks": chunks, "step_count": step_count}

    async def assemble_context(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        logger.info(
            f"Assembling context from {len(state.chunks)} sources",
            extra={"session_id": str(state.session.id)},
        )
        return {
            "context": format_context(state.chunks),
            "citations": format_citations(state.chunks, excerpt_chars=settings.EXCERPT_CHARS),
            "step_count": step_count,
        }

    async def summarize_context(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        summary = await deps.summarizer.summarize(state.context, state.query)
        return {"summary": summary, "step_count": step_count}

    async def synthesize_analysis(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        prompt = build_analysis_prompt(
            template=state.template,
            session=state.session,
            query=state.query,
            context=state.context,
            summary=state.summary,
            additional_facts=state.additional_facts,
        )
        synthesis = await deps.synthesizer.synthesize(prompt, reasoning_level=state.reasoning_level)

        stray = out_of_range_labels(synthesis.text, len(state.chunks))
        if stray:
            logger.warning(
                f"Model cited sources outside the retrieved range: {stray}",
                extra={"session_id": str(state.session.id)},
            )
        return {"synthesis": synthesis, "step_count": step_count}

    async def persist_outputs(state: TrainingRunState) -> dict[str, Any]:
        step_count = _check_max_steps(state)
        if state.synthesis is None:
            raise ValueError("Synthesis output not available")

        session = state.session
        synthesis = state.synthesis

        run_id = await insert_session_run(
            deps.supabase,
            session_id=session.id,
            model_name=synthesis.model,
            prompt_template_id=state.template.id,
            input_payload={
                "query": state.query,
                "additional_facts": state.additional_facts,
                "summarizer_provider": deps.summarizer.provider,
                "summarizer_model": deps.summarizer.model,
                "reasoning_level": state.reasoning_level,
                "corpus_id": str(state.corpus_id) if state.corpus_id else None,
                "source_count": len(state.chunks),
            },
            output_summary=synthesis.text[: settings.OUTPUT_SUMMARY_CHARS],
            output_tokens=synthesis.output_tokens,
        )

        document_id = await insert_generated_document(
            deps.supabase,
            session_id=session.id,
            domain=session.domain,
            title=document_title(session),
            doc_type=state.template.template_kind.value,
            content=synthesis.text,
            metadata={"run_id": str(run_id), "source_count": len(state.chunks)},
        )

        try:
            await insert_source_citations(deps.supabase, document_id, state.citations)
        except CitationWriteError:
            # A document without its evidence links breaks traceability; remove it.
            try:
                await delete_generated_document(deps.supabase, document_id)
            except Exception:
                logger.exception(
                    f"Failed to remove uncited document {document_id}",
                    extra={"run_id": str(run_id), "document_id": str(document_id)},
                )
            raise

        return {"run_id": run_id, "document_id": document_id, "step_count": step_count}

    graph = StateGraph(TrainingRunState)

    graph.add_node("embed_query", embed_query)
    graph.add_node("retrieve_chunks", retrieve_chunks)
    graph.add_node("assemble_context", assemble_context)
    graph.add_node("summarize_context", summarize_context)
    graph.add_node("synthesize_analysis", synthesize_analysis)
    graph.add_node("persist_outputs", persist_outputs)

    # Linear flow (no cycles)
    graph.set_entry_point("embed_query")
    graph.add_edge("embed_query", "retrieve_chunks")
    graph.add_edge("retrieve_chunks", "assemble_context")
    graph.add_edge("assemble_context", "summarize_context")
    graph.add_edge("summarize_context", "synthesize_analysis")
    graph.add_edge("synthesize_analysis", "persist_outputs")
    graph.add_edge("persist_outputs", END)

    return graph.compile()


async def run_training_session(
    deps: TrainingDependencies,
    session_id: UUID,
    prompt_template_id: UUID,
    query: str,
    additional_facts: str | None = None,
    reasoning_level: int | None = None,
    corpus_id: UUID | None = None,
    success_status: SessionStatus | str | None = None,
) -> TrainingRunResult:
    """
    Run the training pipeline for one session.

    Args:
        deps: Injected clients and settings
        session_id: Training session to run
        prompt_template_id: Template whose instructions shape the document
        query: Non-empty training query
        additional_facts: Optional extra facts for the primary call
        reasoning_level: Optional integer level mapped to reasoning effort
        corpus_id: Optional corpus to scope retrieval
        success_status: Status to finish in; defaults to TRAINING_SUCCESS_STATUS

    Returns:
        TrainingRunResult with run/document IDs, content and retrieval

    Raises:
        ProviderUnavailable: Before any session mutation, if a client is missing
        SessionNotFound / TemplateNotFound: Before any session mutation
        SessionBusy: If another run owns the session
        StoreUnavailable: If the session store cannot be reached; a claim
            that landed regardless is released before this is raised
        TrainingPipelineError: Any failure after entry; the session is
            already in the recovery state when this is raised
    """
    deps.ensure_configured()
    target_status = resolve_success_status(success_status or deps.settings.TRAINING_SUCCESS_STATUS)

    # Both lookups are awaited even if one fails
    lookups = await asyncio.gather(
        get_session(deps.supabase, session_id),
        get_prompt_template(deps.supabase, prompt_template_id),
        return_exceptions=True,
    )
    for outcome in lookups:
        if isinstance(outcome, BaseException):
            raise outcome
    session, template = lookups

    if session is None:
        raise SessionNotFound("Training session not found.")
    if template is None:
        raise TemplateNotFound("Prompt template not found.")
    if not template.is_active:
        raise TemplateNotFound("Prompt template is not active.")

    if template.domain != session.domain:
        logger.warning(
            f"Template {template.id} is for {template.domain.value}, "
            f"session is {session.domain.value}",
            extra={"session_id": str(session_id)},
        )

    initial_state = TrainingRunState(
        session=session,
        template=template,
        query=query,
        additional_facts=additional_facts,
        reasoning_level=reasoning_level,
        corpus_id=corpus_id,
    )

    # The claim may land even when the call reporting it fails, so every
    # failure below releases it; recovery only touches a session holding it.
    claimed_at = utc_now_iso()
    entered = False
    try:
        await begin_run(
            deps.supabase,
            session,
            claimed_at=claimed_at,
            lease_seconds=deps.settings.RUN_LEASE_SECONDS,
        )
        entered = True

        logger.info(
            f"Starting training run for session {session_id}",
            extra={"session_id": str(session_id)},
        )

        final_state = await build_training_graph(deps).ainvoke(initial_state)

        run_id = final_state["run_id"]
        document_id = final_state["document_id"]
        synthesis = final_state["synthesis"]
        if not run_id or not document_id or synthesis is None:
            raise TrainingPipelineError("Graph did not produce expected outputs.")

        await finish_run(deps.supabase, session_id, target_status, claimed_at=claimed_at)

    except asyncio.CancelledError:
        logger.warning(
            "Training run cancelled; releasing session",
            extra={"session_id": str(session_id)},
        )
        await asyncio.shield(recover(deps.supabase, session_id, claimed_at))
        raise
    except (SessionBusy, InvalidTransition) as e:
        # Rejected at entry: nothing was claimed
        if entered:
            logger.error(
                f"Training run failed: {e.message}",
                extra={"session_id": str(session_id), "error_type": type(e).__name__},
            )
            await recover(deps.supabase, session_id, claimed_at)
        raise
    except TrainingPipelineError as e:
        logger.error(
            f"Training run failed: {e.message}",
            extra={"session_id": str(session_id), "error_type": type(e).__name__},
        )
        await recover(deps.supabase, session_id, claimed_at)
        raise
    except Exception as e:
        logger.exception(
            "Training run failed unexpectedly",
            extra={"session_id": str(session_id), "error_type": type(e).__name__},
        )
        await recover(deps.supabase, session_id, claimed_at)
        raise TrainingPipelineError("Training run failed.") from e

    logger.info(
        f"Completed training run {run_id}",
        extra={
            "run_id": str(run_id),
            "session_id": str(session_id),
            "document_id": str(document_id),
        },
    )

    return TrainingRunResult(
        run_id=run_id,
        document_id=document_id,
        content=synthesis.text,
        retrieval=final_state["chunks"],
        citations=final_state["citations"],
    )
