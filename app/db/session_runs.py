"""Session run audit records.

One immutable row per pipeline execution that got past the primary model
call. Rows are never updated.
"""

from typing import Any
from uuid import UUID

from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.schemas_training import SessionRunRecord
from app.core.training_errors import PersistenceError

logger = get_logger(__name__)


async def insert_session_run(
    supabase: AsyncClient,
    session_id: UUID,
    model_name: str,
    prompt_template_id: UUID,
    input_payload: dict[str, Any],
    output_summary: str,
    output_tokens: int | None,
) -> UUID:
    """
    Create a session run record.

    Args:
        supabase: Supabase client
        session_id: Training session UUID
        model_name: Model used for the primary call
        prompt_template_id: Template used for the run
        input_payload: Query, facts and summarizer identity (no raw prompts)
        output_summary: Bounded excerpt of the generated text
        output_tokens: Output tokens reported by the provider, if any

    Returns:
        Created session_run UUID

    Raises:
        PersistenceError: If the insert returns no row or fails
    """
    try:
        response = (
            await supabase.table("session_runs")
            .insert(
                {
                    "session_id": str(session_id),
                    "model_name": model_name,
                    "prompt_template_id": str(prompt_template_id),
                    "input_payload": input_payload,
                    "output_summary": output_summary,
                    "output_tokens": output_tokens,
                }
            )
            .execute()
        )
    except Exception as e:
        logger.error(
            f"Failed to create session_run: {e}",
            extra={"session_id": str(session_id), "error_type": type(e).__name__},
        )
        raise PersistenceError("Failed to record training run.") from e

    if not response.data:
        raise PersistenceError("Failed to record training run.")

    run_id = UUID(response.data[0]["id"])
    logger.info(
        f"Created session_run {run_id}",
        extra={"run_id": str(run_id), "session_id": str(session_id)},
    )
    return run_id


async def list_session_runs(supabase: AsyncClient, session_id: UUID) -> list[SessionRunRecord]:
    """List run records for a session, newest first."""
    response = (
        await supabase.table("session_runs")
        .select("*")
        .eq("session_id", str(session_id))
        .order("created_at", desc=True)
        .execute()
    )
    return [SessionRunRecord.model_validate(row) for row in response.data or []]
