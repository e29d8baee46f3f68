"""
Renumbering Engine — phase insertion, deletion and in-place edits.

Phase numbers of a journey always form the sequence 1..N. Insert and delete
shift the tail of the sequence inside the same unit of work as the row
change. The shift is done in two steps (park the rows on negative numbers,
flush, then write the final numbers) so the (journey_id, phase_number)
unique constraint holds after every single UPDATE on every backend.

Only NEW_EMPLOYEE journeys may be restructured; EXISTING_EMPLOYEE cycles
follow the fixed template.
"""

from __future__ import annotations

import logging
from datetime import datetime

from app.core.exceptions import ForbiddenError, InvalidStateError, ValidationError
from app.models import db
from app.models.journey import (
    ActivityType,
    EmployeeType,
    Journey,
    JourneyPhase,
    JourneyStatus,
    PhaseStatus,
)
from app.services import journey_store
from app.services.journey_templates import clean_text, normalize_phase_config
from app.services.unit_of_work import with_transaction
from app.utils.helpers import add_days, utcnow

logger = logging.getLogger(__name__)


def _require_restructurable(journey: Journey) -> None:
    if journey.employee_type != EmployeeType.NEW_EMPLOYEE:
        raise ForbiddenError("Phases can only be added or removed on NEW_EMPLOYEE journeys")


def _shift_phases(phases: list[JourneyPhase], delta: int) -> None:
    """Move every phase in ``phases`` by ``delta`` without a transient collision."""
    if not phases:
        return
    targets = {p.id: p.phase_number + delta for p in phases}
    for p in phases:
        p.phase_number = -p.phase_number
    db.session.flush()
    for p in phases:
        p.phase_number = targets[p.id]
    db.session.flush()


# ── Insert ───────────────────────────────────────────────────────────────────


def insert_phase(
    journey_id: int,
    phase_config: dict,
    insert_after_phase_number: int | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Insert a NOT_STARTED phase after ``insert_after_phase_number``.

    ``None`` appends with its due date counted from now; ``0`` inserts at the
    front. An explicit predecessor chains the due date from the predecessor's.
    Phases numbered at or above the new number move up by one.

    Raises:
        NotFoundError: journey does not exist.
        ForbiddenError: journey is not NEW_EMPLOYEE.
        ValidationError: bad config or position outside 0..N.
        InvalidStateError: journey completed, or the new phase would precede
            a phase that has already started.
    """
    cfg = normalize_phase_config(phase_config)

    def _insert(uow):
        ts = now or utcnow()
        journey = journey_store.lock_journey(journey_id)
        _require_restructurable(journey)
        if journey.status == JourneyStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot add phases to a completed journey", current_state=journey.status,
            )
        if cfg["mentor_id"] is not None:
            journey_store.get_user(cfg["mentor_id"])

        phases = journey_store.list_phases(journey.id)
        total = len(phases)
        after = total if insert_after_phase_number is None else insert_after_phase_number
        if isinstance(after, bool) or not isinstance(after, int) or not 0 <= after <= total:
            raise ValidationError(
                f"insert_after_phase_number must be between 0 and {total}",
                details={"insert_after_phase_number": "out_of_range"},
            )

        new_number = after + 1
        tail = [p for p in phases if p.phase_number >= new_number]
        started = [p for p in tail if p.status != PhaseStatus.NOT_STARTED]
        if started:
            raise InvalidStateError(
                f"Cannot insert before phase {started[0].phase_number}, which has already started",
                current_state=started[0].status,
            )

        # Appending (no position given) starts from now, not from the last phase.
        predecessor = (
            phases[after - 1] if insert_after_phase_number is not None and after > 0 else None
        )
        start = predecessor.due_date if predecessor and predecessor.due_date else ts

        _shift_phases(tail, +1)

        phase = JourneyPhase(
            journey_id=journey.id,
            phase_number=new_number,
            phase_type=cfg["phase_type"],
            title=cfg["title"],
            description=cfg["description"],
            duration_days=cfg["duration_days"],
            status=PhaseStatus.NOT_STARTED,
            due_date=add_days(start, cfg["duration_days"]),
            mentor_id=cfg["mentor_id"],
            created_at=ts,
            updated_at=ts,
        )
        db.session.add(phase)
        journey_store.touch(journey, ts)
        journey_store.record_activity(
            journey,
            ActivityType.PHASE_ADDED,
            "Phase Added",
            f"{phase.title} added as phase {new_number}",
            phase_number=new_number,
            payload={"phase_type": phase.phase_type, "shifted": len(tail)},
            actor_id=actor_id,
            now=ts,
        )
        uow.flush()
        return phase.to_dict(now=ts)

    result = with_transaction(_insert)
    logger.info(
        "Phase %s inserted into journey %s at #%d",
        result["id"], journey_id, result["phase_number"],
        extra={"journey_id": journey_id, "phase_id": result["id"]},
    )
    return result


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_phase(phase_id: int, actor_id: int | None = None, now: datetime | None = None) -> dict:
    """Delete a NOT_STARTED phase and close the gap.

    Returns:
        {"deleted_phase_id", "journey_id", "phase_number"}

    Raises:
        NotFoundError: phase does not exist.
        ForbiddenError: journey is not NEW_EMPLOYEE.
        InvalidStateError: phase has started or completed.
    """

    def _delete(uow):
        ts = now or utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)
        _require_restructurable(journey)
        if phase.status != PhaseStatus.NOT_STARTED:
            raise InvalidStateError(
                "Only phases that have not started can be deleted",
                current_state=phase.status,
            )

        number, title = phase.phase_number, phase.title
        db.session.delete(phase)
        uow.flush()

        tail = [p for p in journey_store.list_phases(journey.id) if p.phase_number > number]
        _shift_phases(tail, -1)

        journey_store.touch(journey, ts)
        journey_store.record_activity(
            journey,
            ActivityType.PHASE_DELETED,
            "Phase Deleted",
            f"{title} removed (was phase {number})",
            phase_number=number,
            payload={"phase_id": phase_id, "title": title, "shifted": len(tail)},
            actor_id=actor_id,
            now=ts,
        )
        uow.flush()
        return {"deleted_phase_id": phase_id, "journey_id": journey.id, "phase_number": number}

    result = with_transaction(_delete)
    logger.info(
        "Phase %s deleted from journey %s", phase_id, result["journey_id"],
        extra={"journey_id": result["journey_id"], "phase_id": phase_id},
    )
    return result


# ── Update ───────────────────────────────────────────────────────────────────

_UPDATABLE_FIELDS = ("title", "description", "duration_days")


def update_phase_details(
    phase_id: int,
    data: dict,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Edit title, description or duration_days of a phase. Never renumbers.

    A started phase whose duration changes gets due_date = started_at + new
    duration. Allowed on both employee types.

    Raises:
        NotFoundError: phase does not exist.
        ValidationError: empty or non-string title, bad duration, or
            nothing to update.
        InvalidStateError: duration change on a completed phase.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError("Phase update must be an object")
    changes: dict = {}
    errors: dict[str, str] = {}

    if "title" in data:
        title = clean_text(data, "title", errors)
        if not title and "title" not in errors:
            errors["title"] = "title cannot be empty"
        elif len(title) > 300:
            errors["title"] = "title must be ≤ 300 characters"
        elif "title" not in errors:
            changes["title"] = title
    if "description" in data:
        description = clean_text(data, "description", errors)
        if "description" not in errors:
            changes["description"] = description
    if "duration_days" in data:
        duration = data.get("duration_days")
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            errors["duration_days"] = "duration_days must be a positive integer"
        else:
            changes["duration_days"] = duration

    if errors:
        raise ValidationError("Invalid phase update", details=errors)
    if not changes:
        raise ValidationError(
            f"Nothing to update; allowed fields: {', '.join(_UPDATABLE_FIELDS)}",
            details={"fields": "empty"},
        )

    def _update(uow):
        ts = now or utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)

        if "duration_days" in changes and phase.status == PhaseStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot change the duration of a completed phase", current_state=phase.status,
            )

        old = {field: getattr(phase, field) for field in changes}
        for field, value in changes.items():
            setattr(phase, field, value)

        if "duration_days" in changes and changes["duration_days"] != old["duration_days"]:
            if phase.started_at is not None:
                phase.due_date = add_days(phase.started_at, phase.duration_days)
            elif phase.due_date is not None:
                phase.due_date = add_days(phase.due_date, phase.duration_days - old["duration_days"])

        journey_store.touch(journey, ts)
        journey_store.record_activity(
            journey,
            ActivityType.PHASE_UPDATED,
            "Phase Updated",
            f"{phase.title} updated: {', '.join(sorted(changes))}",
            phase_number=phase.phase_number,
            payload={"before": old, "after": changes},
            actor_id=actor_id,
            now=ts,
        )
        uow.flush()
        return phase.to_dict(now=ts)

    return with_transaction(_update)
