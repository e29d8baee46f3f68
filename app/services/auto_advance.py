"""
Auto-Advance Trigger — the single entry point for completing a journey phase.

Causes:
    assessment_completed  linked assessment finished (completion signal)
    training_completed    linked training assignment finished (completion signal)
    phase_skipped         admin skipped the active phase
    manual_completion     admin/mentor marked the phase done
    manual_advance        admin advanced the journey without naming a phase

auto_advance_phase() locks the journey and re-reads the active phase inside
the unit of work. When a phase id is expected and the active phase is a
different one (already advanced by an earlier signal, or a stale webhook),
it returns False without writing anything. Duplicate completion signals are
therefore harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import InvalidStateError, ValidationError
from app.models.journey import ActivityType, PhaseStatus
from app.integrations.assessment_gateway import assessment_gateway
from app.services import journey_store
from app.services.journey_service import seed_next_cycle
from app.services.phase_state_machine import complete_phase
from app.services.unit_of_work import with_transaction
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

CAUSE_ASSESSMENT_COMPLETED = "assessment_completed"
CAUSE_TRAINING_COMPLETED = "training_completed"
CAUSE_PHASE_SKIPPED = "phase_skipped"
CAUSE_MANUAL_COMPLETION = "manual_completion"
CAUSE_MANUAL_ADVANCE = "manual_advance"

_CAUSE_TEXT = {
    CAUSE_ASSESSMENT_COMPLETED: "completed via linked assessment",
    CAUSE_TRAINING_COMPLETED: "completed via linked training",
    CAUSE_PHASE_SKIPPED: "skipped",
    CAUSE_MANUAL_COMPLETION: "manually completed",
    CAUSE_MANUAL_ADVANCE: "completed",
}


# ═════════════════════════════════════════════════════════════════════════════
# Links
# ═════════════════════════════════════════════════════════════════════════════


def _clean_ref(value, field: str) -> str:
    ref = str(value).strip() if value is not None else ""
    if not ref:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if len(ref) > 64:
        raise ValidationError(f"{field} must be ≤ 64 characters", details={field: "too_long"})
    return ref


def link_assessment_to_phase(phase_id: int, assessment_id, actor_id: int | None = None) -> dict:
    """Attach an assessment to a phase. Completion arrives later as a signal.

    Raises:
        NotFoundError: phase does not exist.
        ValidationError: empty assessment id.
        InvalidStateError: assessment not published/assignable, or phase completed.
    """
    assessment_id = _clean_ref(assessment_id, "assessment_id")
    journey_store.get_phase(phase_id)

    # Remote check happens before the transaction opens; no lock is held over HTTP.
    if not assessment_gateway.is_assignable(assessment_id):
        raise InvalidStateError(f"Assessment {assessment_id} is not published or not assignable")

    def _link(uow):
        now = utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)
        if phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot link an assessment to a completed phase", current_state=phase.status,
            )
        phase.linked_assessment_id = assessment_id
        journey_store.touch(journey, now)
        journey_store.record_activity(
            journey,
            ActivityType.ASSESSMENT_LINKED,
            "Assessment Linked",
            f"Assessment {assessment_id} linked to {phase.title}",
            phase_number=phase.phase_number,
            payload={"assessment_id": assessment_id},
            actor_id=actor_id,
            now=now,
        )
        uow.flush()
        return phase.to_dict(now=now)

    return with_transaction(_link)


def link_training_to_phase(phase_id: int, training_assignment_id, actor_id: int | None = None) -> dict:
    """Attach a training assignment to a phase.

    Raises:
        NotFoundError: phase does not exist.
        ValidationError: empty training assignment id.
        InvalidStateError: phase completed.
    """
    training_assignment_id = _clean_ref(training_assignment_id, "training_assignment_id")

    def _link(uow):
        now = utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)
        if phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot link training to a completed phase", current_state=phase.status,
            )
        phase.linked_training_assignment_id = training_assignment_id
        journey_store.touch(journey, now)
        journey_store.record_activity(
            journey,
            ActivityType.TRAINING_LINKED,
            "Training Linked",
            f"Training assignment {training_assignment_id} linked to {phase.title}",
            phase_number=phase.phase_number,
            payload={"training_assignment_id": training_assignment_id},
            actor_id=actor_id,
            now=now,
        )
        uow.flush()
        return phase.to_dict(now=now)

    return with_transaction(_link)


# ═════════════════════════════════════════════════════════════════════════════
# Advancing
# ═════════════════════════════════════════════════════════════════════════════


def _advance(
    uow,
    journey_id: int,
    cause: str,
    payload: dict | None,
    expected_phase_id: int | None,
    actor_id: int | None,
    now: datetime,
):
    """Complete the active phase inside ``uow``. Returns the outcome or None."""
    journey = journey_store.lock_journey(journey_id)
    phase = journey_store.find_active_phase(journey.id)
    if phase is None:
        logger.info(
            "Journey %s has no active phase; %s ignored", journey_id, cause,
            extra={"journey_id": journey_id},
        )
        return None
    if expected_phase_id is not None and phase.id != expected_phase_id:
        logger.info(
            "Journey %s active phase is %s, not %s; %s ignored",
            journey_id, phase.id, expected_phase_id, cause,
            extra={"journey_id": journey_id, "phase_id": expected_phase_id},
        )
        return None

    details = dict(payload or {})
    details["cause"] = cause
    if cause == CAUSE_PHASE_SKIPPED:
        activity_type, title = ActivityType.PHASE_SKIPPED, "Phase Skipped"
    else:
        activity_type, title = ActivityType.PHASE_ADVANCED, "Phase Completed"

    description = f"{phase.title} {_CAUSE_TEXT.get(cause, 'completed')}"
    note = details.get("reason") or details.get("notes")
    if note:
        description = f"{description}: {note}"

    outcome = complete_phase(
        journey, phase, now,
        activity_type=activity_type,
        title=title,
        description=description,
        payload=details,
        actor_id=actor_id,
    )
    if outcome.journey_completed:
        seed_next_cycle(uow, journey, now, actor_id=actor_id)
    uow.flush()
    return outcome


def auto_advance_phase(
    journey_id: int,
    cause: str,
    payload: dict | None = None,
    expected_phase_id: int | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> bool:
    """Complete the journey's active phase and start the next one.

    Returns:
        True if a phase was completed; False if there was nothing to do.

    Raises:
        NotFoundError: journey does not exist.
    """
    outcome = with_transaction(
        lambda uow: _advance(
            uow, journey_id, cause, payload, expected_phase_id, actor_id, now or utcnow(),
        )
    )
    if outcome is None:
        return False
    logger.info(
        "Journey %s advanced (%s)%s", journey_id, cause,
        "; journey completed" if outcome.journey_completed else "",
        extra={"journey_id": journey_id},
    )
    return True


def skip_journey_phase(
    journey_id: int,
    phase_number: int,
    reason: str | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Skip the active phase ``phase_number``.

    Returns:
        Journey dict with phases after the skip.

    Raises:
        NotFoundError: journey or phase does not exist.
        InvalidStateError: phase completed or not started yet.
    """

    def _skip(uow):
        ts = now or utcnow()
        journey = journey_store.lock_journey(journey_id)
        phase = journey_store.get_phase_by_number(journey.id, phase_number)
        if phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError("Phase is already completed", current_state=phase.status)
        if phase.status == PhaseStatus.NOT_STARTED:
            raise InvalidStateError(
                "Cannot skip a phase that has not started", current_state=phase.status,
            )
        reason_text = (reason or "").strip() or None
        _advance(uow, journey.id, CAUSE_PHASE_SKIPPED, {"reason": reason_text}, phase.id, actor_id, ts)
        return journey_store.journey_snapshot(journey, now=ts)

    result = with_transaction(_skip)
    logger.info(
        "Journey %s phase #%s skipped", journey_id, phase_number,
        extra={"journey_id": journey_id},
    )
    return result


def manually_complete_phase(
    phase_id: int,
    completed_by: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Mark the active phase done on behalf of ``completed_by``.

    Raises:
        NotFoundError: phase does not exist.
        InvalidStateError: phase is not the journey's active phase.
    """

    def _complete(uow):
        ts = now or utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)
        if not phase.is_active:
            raise InvalidStateError(
                f"Phase {phase.phase_number} is not in progress", current_state=phase.status,
            )
        payload = {"completed_by": completed_by}
        if notes:
            payload["notes"] = notes.strip()
        _advance(uow, journey.id, CAUSE_MANUAL_COMPLETION, payload, phase.id, completed_by, ts)
        return journey_store.journey_snapshot(journey, now=ts)

    return with_transaction(_complete)


# ═════════════════════════════════════════════════════════════════════════════
# Completion signals
# ═════════════════════════════════════════════════════════════════════════════


def handle_assessment_completed(phase_id: int, assessment_id) -> bool:
    """Advance the journey if ``assessment_id`` is the phase's linked assessment."""
    phase = journey_store.find_phase(phase_id)
    if phase is None:
        logger.warning("Assessment completion for unknown phase %s ignored", phase_id)
        return False
    if phase.linked_assessment_id != str(assessment_id):
        logger.info(
            "Assessment %s is not linked to phase %s; ignored", assessment_id, phase_id,
            extra={"phase_id": phase_id},
        )
        return False
    return auto_advance_phase(
        phase.journey_id,
        CAUSE_ASSESSMENT_COMPLETED,
        {"assessment_id": str(assessment_id)},
        expected_phase_id=phase.id,
    )


def handle_training_completed(phase_id: int, training_assignment_id) -> bool:
    """Advance the journey if ``training_assignment_id`` is the phase's linked training."""
    phase = journey_store.find_phase(phase_id)
    if phase is None:
        logger.warning("Training completion for unknown phase %s ignored", phase_id)
        return False
    if phase.linked_training_assignment_id != str(training_assignment_id):
        logger.info(
            "Training assignment %s is not linked to phase %s; ignored",
            training_assignment_id, phase_id,
            extra={"phase_id": phase_id},
        )
        return False
    return auto_advance_phase(
        phase.journey_id,
        CAUSE_TRAINING_COMPLETED,
        {"training_assignment_id": str(training_assignment_id)},
        expected_phase_id=phase.id,
    )
