"""Database access layer for training sessions and prompt templates."""

import asyncio
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.schemas_training import (
    Domain,
    PromptTemplate,
    SessionStatus,
    TrainingSession,
)
from app.core.training_errors import PersistenceError, StoreUnavailable

logger = get_logger(__name__)

SESSION_COLUMNS = (
    "id, domain, title, objective, status, scheduled_for, started_at, completed_at, created_at"
)
TEMPLATE_COLUMNS = "id, name, instructions, template_kind, domain, is_active"


def utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


async def _execute(query, action: str):
    """Run a query, mapping store faults onto the pipeline error types."""
    try:
        return await query.execute()
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        logger.error(f"Session store unreachable during {action}: {type(e).__name__}: {e}")
        raise StoreUnavailable("Session store is unavailable.") from e
    except APIError as e:
        logger.error(f"Session store rejected {action}: {e}")
        raise PersistenceError(f"Failed to {action}.") from e


# === Sessions ===


async def create_session(
    supabase: AsyncClient,
    domain: Domain,
    title: str,
    objective: str = "",
    scheduled_for: datetime | None = None,
) -> TrainingSession:
    """Create a new session in ``draft``."""
    data = {
        "domain": domain.value,
        "title": title,
        "objective": objective,
        "status": SessionStatus.DRAFT.value,
        "scheduled_for": scheduled_for.isoformat() if scheduled_for else None,
    }
    response = await _execute(
        supabase.table("training_sessions").insert(data), "create training session"
    )
    if not response.data:
        raise PersistenceError("Failed to create training session.")
    session = TrainingSession.model_validate(response.data[0])
    logger.info(f"Created training session {session.id}", extra={"session_id": str(session.id)})
    return session


async def get_session(supabase: AsyncClient, session_id: UUID) -> TrainingSession | None:
    """Get a session by ID."""
    response = await _execute(
        supabase.table("training_sessions")
        .select(SESSION_COLUMNS)
        .eq("id", str(session_id))
        .limit(1),
        "load training session",
    )
    if not response.data:
        return None
    return TrainingSession.model_validate(response.data[0])


async def compare_and_set_status(
    supabase: AsyncClient,
    session_id: UUID,
    expected: SessionStatus,
    target: SessionStatus,
    expected_started_at: str | None = None,
    started_at_missing: bool = False,
    **fields: Any,
) -> bool:
    """
    Move a session from ``expected`` to ``target`` only if it is still ``expected``.

    Args:
        expected_started_at: Also require this ``started_at`` (the claim of one run)
        started_at_missing: Also require ``started_at`` to be null

    Returns:
        True if a row was updated, False if the guarded columns had already changed
    """
    update_data = {"status": target.value, **fields}
    query = (
        supabase.table("training_sessions")
        .update(update_data)
        .eq("id", str(session_id))
        .eq("status", expected.value)
    )
    if expected_started_at is not None:
        query = query.eq("started_at", expected_started_at)
    elif started_at_missing:
        query = query.is_("started_at", "null")

    response = await _execute(query, "update training session status")
    updated = bool(response.data)
    logger.info(
        f"Session {session_id} {expected.value} -> {target.value}: "
        f"{'applied' if updated else 'conflict'}",
        extra={"session_id": str(session_id)},
    )
    return updated


async def set_status(
    supabase: AsyncClient,
    session_id: UUID,
    target: SessionStatus,
    **fields: Any,
) -> None:
    """Unconditionally set a session's status."""
    update_data = {"status": target.value, **fields}
    response = await _execute(
        supabase.table("training_sessions").update(update_data).eq("id", str(session_id)),
        "update training session status",
    )
    if not response.data:
        raise PersistenceError(f"Failed to update training session {session_id}.")
    logger.info(
        f"Session {session_id} set to {target.value}",
        extra={"session_id": str(session_id)},
    )


# === Prompt templates ===


async def get_prompt_template(supabase: AsyncClient, template_id: UUID) -> PromptTemplate | None:
    """Get a prompt template by ID."""
    response = await _execute(
        supabase.table("prompt_templates")
        .select(TEMPLATE_COLUMNS)
        .eq("id", str(template_id))
        .limit(1),
        "load prompt template",
    )
    if not response.data:
        return None
    return PromptTemplate.model_validate(response.data[0])
