"""
Phase State Machine — owns every phase status change.

    NOT_STARTED ──start──▶ IN_PROGRESS ──complete──▶ COMPLETED
                               │
                      (now > due_date: reported as OVERDUE, not stored)

Rules:
    - A phase starts when it becomes the journey's active phase: phase 1 on
      journey creation, or the successor of a just-completed phase.
      started_at = now, due_date = now + duration_days.
    - Completing the active phase starts phase_number + 1, or completes the
      journey when there is no successor.
    - OVERDUE is derived (JourneyPhase.status_at). A row persisted as OVERDUE
      by an older batch job is treated exactly like IN_PROGRESS.
    - Every transition appends a JourneyActivity.

Functions here never commit; callers run them inside with_transaction().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from app.core.exceptions import InvalidStateError
from app.models import db
from app.models.journey import (
    ActivityType,
    Journey,
    JourneyPhase,
    JourneyStatus,
    PhaseStatus,
)
from app.services import journey_store
from app.utils.helpers import add_days, utcnow

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[str, frozenset] = {
    PhaseStatus.NOT_STARTED: frozenset({PhaseStatus.IN_PROGRESS}),
    PhaseStatus.IN_PROGRESS: frozenset({PhaseStatus.COMPLETED}),
    PhaseStatus.OVERDUE: frozenset({PhaseStatus.COMPLETED}),
    PhaseStatus.COMPLETED: frozenset(),
}


@dataclass
class CompletionOutcome:
    """What happened when a phase was completed."""

    completed_phase: JourneyPhase
    next_phase: JourneyPhase | None
    journey_completed: bool


def effective_status(phase: JourneyPhase, now: datetime | None = None) -> str:
    return phase.status_at(now or utcnow())


def _check_transition(phase: JourneyPhase, target: str) -> None:
    if target not in _TRANSITIONS.get(phase.status, frozenset()):
        raise InvalidStateError(
            f"Phase {phase.phase_number} cannot move from {phase.status} to {target}",
            current_state=phase.status,
        )


def start_phase(
    journey: Journey,
    phase: JourneyPhase,
    now: datetime,
    *,
    actor_id: int | None = None,
    description: str = "Phase started",
) -> JourneyPhase:
    """NOT_STARTED → IN_PROGRESS."""
    _check_transition(phase, PhaseStatus.IN_PROGRESS)
    phase.status = PhaseStatus.IN_PROGRESS
    phase.started_at = now
    phase.due_date = add_days(now, phase.duration_days)
    phase.completed_at = None
    phase.overdue_notified_at = None

    if journey.status == JourneyStatus.NOT_STARTED:
        journey.status = JourneyStatus.IN_PROGRESS
        journey.started_at = journey.started_at or now

    journey_store.record_activity(
        journey,
        ActivityType.PHASE_STARTED,
        f"{phase.title} Started",
        description,
        phase_number=phase.phase_number,
        actor_id=actor_id,
        now=now,
    )
    logger.info(
        "Phase %s (#%d) started, due %s", phase.id, phase.phase_number, phase.due_date,
        extra={"journey_id": journey.id, "phase_id": phase.id},
    )
    return phase


def complete_phase(
    journey: Journey,
    phase: JourneyPhase,
    now: datetime,
    *,
    activity_type: str = ActivityType.PHASE_ADVANCED,
    title: str | None = None,
    description: str = "",
    payload: dict | None = None,
    actor_id: int | None = None,
) -> CompletionOutcome:
    """IN_PROGRESS/OVERDUE → COMPLETED, then start the successor or finish the journey."""
    _check_transition(phase, PhaseStatus.COMPLETED)

    phase.status = PhaseStatus.COMPLETED
    phase.completed_at = now

    journey_store.record_activity(
        journey,
        activity_type,
        title or f"{phase.title} Completed",
        description,
        phase_number=phase.phase_number,
        payload=payload,
        actor_id=actor_id,
        now=now,
    )
    journey_store.touch(journey, now)
    db.session.flush()

    next_phase = (
        JourneyPhase.query
        .filter_by(journey_id=journey.id, phase_number=phase.phase_number + 1)
        .first()
    )
    if next_phase is not None:
        start_phase(
            journey, next_phase, now,
            actor_id=actor_id,
            description="Phase automatically started after previous phase completion",
        )
        return CompletionOutcome(phase, next_phase, journey_completed=False)

    complete_journey(journey, now, actor_id=actor_id)
    return CompletionOutcome(phase, None, journey_completed=True)


def complete_journey(journey: Journey, now: datetime, *, actor_id: int | None = None) -> None:
    """Mark the journey COMPLETED once its last phase is done."""
    if journey.status == JourneyStatus.COMPLETED:
        raise InvalidStateError("Journey is already completed", current_state=journey.status)
    journey.status = JourneyStatus.COMPLETED
    journey.completed_at = now
    journey.paused_at = None
    journey_store.touch(journey, now)
    journey_store.record_activity(
        journey,
        ActivityType.JOURNEY_COMPLETED,
        "Journey Completed",
        "All phases completed successfully",
        actor_id=actor_id,
        now=now,
    )
    logger.info(
        "Journey %s completed", journey.id,
        extra={"journey_id": journey.id, "employee_id": journey.employee_id},
    )
