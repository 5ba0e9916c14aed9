"""
Session State Machine for training runs

Governs a training session's status across pipeline entry and exit.

  draft ──────┐
  needs_input ├──> in_progress ──> needs_input | completed
  completed ──┘

in_progress is owned by exactly one run, identified by the ``started_at``
stamp it wrote (its claim). Entry uses a compare-and-swap on the observed
status so two concurrent runs cannot both claim the session. Exit and
recovery are guarded by the claim, so a run never overwrites a session
another run has since taken over.

A claim is a lease: an in_progress session whose ``started_at`` is older
than the lease (or missing) was abandoned by a crashed or unrecoverable run
and may be reclaimed by a new one. The lease must exceed the worst-case run
duration. needs_input doubles as the recovery state after any failure.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from supabase import AsyncClient

from app.core.logging import get_logger
from app.core.schemas_training import SessionStatus, TrainingSession
from app.core.training_errors import InvalidTransition, SessionBusy
from app.db.training_sessions import compare_and_set_status, set_status, utc_now_iso

logger = get_logger(__name__)

DEFAULT_RUN_LEASE_SECONDS = 900


# ============================================================================
# Transition table
# ============================================================================

TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.DRAFT: frozenset({SessionStatus.IN_PROGRESS}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.NEEDS_INPUT, SessionStatus.COMPLETED}),
    SessionStatus.NEEDS_INPUT: frozenset({SessionStatus.IN_PROGRESS}),
    # Re-running a completed session is accepted
    SessionStatus.COMPLETED: frozenset({SessionStatus.IN_PROGRESS}),
}

# Statuses a successful run may finish in
SUCCESS_STATUSES: frozenset[SessionStatus] = frozenset(
    {SessionStatus.NEEDS_INPUT, SessionStatus.COMPLETED}
)

RECOVERY_STATUS = SessionStatus.NEEDS_INPUT

_missing = set(SessionStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Session transition table missing statuses: {sorted(s.value for s in _missing)}")


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Whether ``current → target`` is a legal move."""
    return target in TRANSITIONS[current]


def validate_transition(current: SessionStatus, target: SessionStatus) -> None:
    """Raise InvalidTransition unless ``current → target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move session from {current.value} to {target.value}."
        )


def resolve_success_status(value: SessionStatus | str) -> SessionStatus:
    """Validate the status a successful run should end in."""
    try:
        status = SessionStatus(value)
    except ValueError as e:
        raise InvalidTransition(f"Unknown session status: {value}") from e
    if status not in SUCCESS_STATUSES:
        raise InvalidTransition(f"{status.value} is not a valid success status.")
    return status


def lease_expired(
    session: TrainingSession,
    lease_seconds: float,
    now: datetime | None = None,
) -> bool:
    """Whether an in_progress claim is old enough to be considered abandoned."""
    if session.started_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    started_at = session.started_at
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return now - started_at > timedelta(seconds=lease_seconds)


# ============================================================================
# Pipeline entry / exit
# ============================================================================


async def begin_run(
    supabase: AsyncClient,
    session: TrainingSession,
    claimed_at: str | None = None,
    lease_seconds: float = DEFAULT_RUN_LEASE_SECONDS,
) -> str:
    """
    Claim the session for a run: ``observed status → in_progress``.

    Args:
        supabase: Supabase client
        session: Session as read before entry
        claimed_at: ``started_at`` stamp identifying this run's claim
        lease_seconds: Age after which an in_progress claim may be taken over

    Returns:
        The claim stamp written to ``started_at``

    Raises:
        SessionBusy: If a live run owns the session or another run won the race
        InvalidTransition: If the observed status cannot enter in_progress
    """
    claimed_at = claimed_at or utc_now_iso()

    if session.status == SessionStatus.IN_PROGRESS:
        if not lease_expired(session, lease_seconds):
            raise SessionBusy("Training session already has a run in progress.")
        logger.warning(
            f"Reclaiming session {session.id} from a run started at {session.started_at}",
            extra={"session_id": str(session.id)},
        )
        claimed = await compare_and_set_status(
            supabase,
            session.id,
            expected=SessionStatus.IN_PROGRESS,
            target=SessionStatus.IN_PROGRESS,
            expected_started_at=session.started_at.isoformat() if session.started_at else None,
            started_at_missing=session.started_at is None,
            started_at=claimed_at,
        )
    else:
        validate_transition(session.status, SessionStatus.IN_PROGRESS)
        claimed = await compare_and_set_status(
            supabase,
            session.id,
            expected=session.status,
            target=SessionStatus.IN_PROGRESS,
            started_at=claimed_at,
        )

    if not claimed:
        raise SessionBusy("Training session changed state before the run could start.")
    return claimed_at


async def finish_run(
    supabase: AsyncClient,
    session_id: UUID,
    success_status: SessionStatus,
    claimed_at: str | None = None,
) -> None:
    """
    Stamp completed_at and move ``in_progress → success_status``.

    With ``claimed_at`` the move only applies while this run still owns the
    session; otherwise SessionBusy is raised.
    """
    validate_transition(SessionStatus.IN_PROGRESS, success_status)
    if claimed_at is None:
        await set_status(supabase, session_id, success_status, completed_at=utc_now_iso())
        return

    finished = await compare_and_set_status(
        supabase,
        session_id,
        expected=SessionStatus.IN_PROGRESS,
        target=success_status,
        expected_started_at=claimed_at,
        completed_at=utc_now_iso(),
    )
    if not finished:
        raise SessionBusy("Training session was taken over before the run finished.")


async def recover(
    supabase: AsyncClient,
    session_id: UUID,
    claimed_at: str | None = None,
) -> None:
    """
    Force the session into the recovery state after a failed run.

    With ``claimed_at`` only this run's claim is released; a session that was
    never claimed, or was taken over, is left alone. A failure here is logged
    and not raised, so the run's own error reaches the caller; the lease
    lets a later run reclaim the session.
    """
    try:
        if claimed_at is None:
            await set_status(supabase, session_id, RECOVERY_STATUS)
            return
        released = await compare_and_set_status(
            supabase,
            session_id,
            expected=SessionStatus.IN_PROGRESS,
            target=RECOVERY_STATUS,
            expected_started_at=claimed_at,
        )
        if not released:
            logger.info(
                f"Session {session_id} not held by this run; nothing to release",
                extra={"session_id": str(session_id)},
            )
    except Exception:
        logger.exception(
            f"Failed to move session {session_id} to {RECOVERY_STATUS.value}",
            extra={"session_id": str(session_id)},
        )
