"""
Journey Service — journey lifecycle and read models.

Lifecycle:
    create_journey  → phases seeded from template or custom configs,
                      phase 1 started, JOURNEY_STARTED appended
    pause_journey   → PAUSED (phase clocks frozen)
    resume_journey  → PAUSED → IN_PROGRESS, non-completed due dates shifted
                      by the paused interval
    seed_next_cycle → EXISTING_EMPLOYEE only: a completed cycle opens the next

Read models: get_journey, get_employee_journey, list_journeys,
get_journey_statistics, get_default_phase_configs.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy import func, or_

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from app.models import db
from app.models.auth import User
from app.models.journey import (
    ActivityType,
    EmployeeType,
    Journey,
    JourneyActivity,
    JourneyPhase,
    JourneyStatus,
    PhaseStatus,
)
from app.services import journey_store
from app.services.journey_progress import calculate_phase_progress
from app.services.journey_templates import (
    default_phases_for,
    normalize_phase_configs,
    validate_employee_type,
)
from app.services.phase_state_machine import start_phase
from app.services.unit_of_work import with_transaction
from app.utils.helpers import add_days, as_utc_naive, utcnow

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


def create_journey(
    employee_id: int,
    employee_type: str,
    custom_phases: list[dict] | None = None,
    start_date: datetime | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Create and start a journey for an employee.

    Args:
        employee_id: Target user.
        employee_type: NEW_EMPLOYEE or EXISTING_EMPLOYEE.
        custom_phases: Phase configs replacing the default template
            (NEW_EMPLOYEE only).
        start_date: Journey start; defaults to now.
        actor_id: User performing the action, for the audit trail.

    Returns:
        Journey dict including phases.

    Raises:
        ValidationError: bad employee_type or phase configs.
        ForbiddenError: custom phases for an EXISTING_EMPLOYEE journey.
        NotFoundError: employee or a configured mentor does not exist.
        ConflictError: the employee already has an active journey.
    """
    validate_employee_type(employee_type)
    if custom_phases is not None:
        if employee_type != EmployeeType.NEW_EMPLOYEE:
            raise ForbiddenError("Custom phases are only allowed for NEW_EMPLOYEE journeys")
        configs = normalize_phase_configs(custom_phases)
    else:
        configs = default_phases_for(employee_type)

    def _create(uow):
        ts = now or utcnow()
        employee = journey_store.get_user(employee_id)
        for cfg in configs:
            if cfg.get("mentor_id") is not None:
                journey_store.get_user(cfg["mentor_id"])

        if journey_store.find_active_journey(employee.id) is not None:
            raise ConflictError(resource="Journey", field="employee_id", value=employee.id)

        journey = _seed_journey(
            uow, employee, employee_type, configs,
            cycle_number=1, start=as_utc_naive(start_date) or ts, now=ts, actor_id=actor_id,
        )
        return journey_store.journey_snapshot(journey, now=ts)

    result = with_transaction(_create)
    logger.info(
        "Journey %s created for employee %s (%s, %d phases)",
        result["id"], employee_id, employee_type, len(result["phases"]),
        extra={"journey_id": result["id"], "employee_id": employee_id},
    )
    return result


def _seed_journey(
    uow,
    employee: User,
    employee_type: str,
    configs: list[dict],
    *,
    cycle_number: int,
    start: datetime,
    now: datetime,
    actor_id: int | None,
) -> Journey:
    """Insert the journey with phases 1..N and start phase 1.

    Planned due dates are chained from ``start``; phase 1's clock is reset
    when it actually starts.
    """
    journey = Journey(
        employee_id=employee.id,
        employee_type=employee_type,
        status=JourneyStatus.NOT_STARTED,
        cycle_number=cycle_number,
        started_at=start,
        created_at=now,
        updated_at=now,
    )
    db.session.add(journey)
    uow.flush()

    cursor = start
    phases = []
    for number, cfg in enumerate(configs, start=1):
        cursor = add_days(cursor, cfg["duration_days"])
        phase = JourneyPhase(
            journey_id=journey.id,
            phase_number=number,
            phase_type=cfg["phase_type"],
            title=cfg["title"],
            description=cfg.get("description") or "",
            duration_days=cfg["duration_days"],
            status=PhaseStatus.NOT_STARTED,
            due_date=cursor,
            mentor_id=cfg.get("mentor_id"),
            created_at=now,
            updated_at=now,
        )
        db.session.add(phase)
        phases.append(phase)
    uow.flush()

    journey_store.record_activity(
        journey,
        ActivityType.JOURNEY_STARTED,
        "Journey Started" if cycle_number == 1 else f"Cycle {cycle_number} Started",
        f"{employee_type.replace('_', ' ').title()} journey started with {len(phases)} phases",
        payload={"cycle_number": cycle_number, "phase_count": len(phases)},
        actor_id=actor_id,
        now=now,
    )
    start_phase(journey, phases[0], start, actor_id=actor_id)

    employee.employee_type = employee_type
    uow.flush()
    return journey


def seed_next_cycle(uow, journey: Journey, now: datetime, actor_id: int | None = None) -> Journey | None:
    """Open the next EXISTING_EMPLOYEE cycle after ``journey`` completed.

    Runs inside the completing unit of work. Returns None when renewal is
    disabled or the journey is not an existing-employee cycle.
    """
    if journey.employee_type != EmployeeType.EXISTING_EMPLOYEE:
        return None
    if has_app_context() and not current_app.config.get("JOURNEY_RENEW_EXISTING_EMPLOYEE_CYCLE", True):
        return None
    if journey.status != JourneyStatus.COMPLETED:
        raise InvalidStateError(
            "Only a completed cycle can be renewed", current_state=journey.status,
        )

    # The completed row must be flushed before the partial unique index sees a
    # second journey for the same employee.
    uow.flush()
    employee = journey_store.get_user(journey.employee_id)
    next_journey = _seed_journey(
        uow, employee, EmployeeType.EXISTING_EMPLOYEE,
        default_phases_for(EmployeeType.EXISTING_EMPLOYEE),
        cycle_number=journey.cycle_number + 1, start=now, now=now, actor_id=actor_id,
    )
    logger.info(
        "Journey %s renewed as cycle %d (journey %s)",
        journey.id, next_journey.cycle_number, next_journey.id,
        extra={"journey_id": next_journey.id, "employee_id": journey.employee_id},
    )
    return next_journey


# ═════════════════════════════════════════════════════════════════════════════
# Pause / Resume
# ═════════════════════════════════════════════════════════════════════════════


def pause_journey(
    journey_id: int,
    reason: str | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """NOT_STARTED / IN_PROGRESS → PAUSED.

    Raises:
        NotFoundError: journey does not exist.
        InvalidStateError: journey is already PAUSED or COMPLETED.
    """

    def _pause(uow):
        ts = now or utcnow()
        journey = journey_store.lock_journey(journey_id)
        if journey.status in (JourneyStatus.PAUSED, JourneyStatus.COMPLETED):
            raise InvalidStateError(
                f"Journey cannot be paused (status: {journey.status})",
                current_state=journey.status,
            )
        journey.status = JourneyStatus.PAUSED
        journey.paused_at = ts
        journey.pause_reason = (reason or "").strip() or None
        journey_store.touch(journey, ts)
        journey_store.record_activity(
            journey,
            ActivityType.JOURNEY_PAUSED,
            "Journey Paused",
            journey.pause_reason or "Journey paused",
            payload={"reason": journey.pause_reason},
            actor_id=actor_id,
            now=ts,
        )
        uow.flush()
        return journey_store.journey_snapshot(journey, now=ts)

    result = with_transaction(_pause)
    logger.info("Journey %s paused", journey_id, extra={"journey_id": journey_id})
    return result


def resume_journey(
    journey_id: int,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """PAUSED → IN_PROGRESS, shifting every non-completed due date.

    A phase started before the pause moves by the whole paused interval; a
    phase started during the pause moves only by the part after its start.

    The second case is not a literal N-day shift: a phase activated while
    the journey was paused (e.g. by an assessment signal) is extended by
    ``resume - started_at``, which is shorter than the pause. Its due date
    lands ``duration_days`` after the resume.

    Raises:
        NotFoundError: journey does not exist.
        InvalidStateError: journey is not PAUSED.
    """

    def _resume(uow):
        ts = now or utcnow()
        journey = journey_store.lock_journey(journey_id)
        if journey.status != JourneyStatus.PAUSED:
            raise InvalidStateError(
                f"Only a paused journey can be resumed (status: {journey.status})",
                current_state=journey.status,
            )

        paused_at = journey.paused_at or ts
        shifted = 0
        for phase in journey_store.list_phases(journey.id):
            if phase.status == PhaseStatus.COMPLETED or phase.due_date is None:
                continue
            frozen_from = max(paused_at, phase.started_at) if phase.started_at else paused_at
            delta = ts - frozen_from
            if delta.total_seconds() <= 0:
                continue
            phase.due_date = phase.due_date + delta
            shifted += 1

        paused_days = max(0, (ts - paused_at).days)
        journey.status = JourneyStatus.IN_PROGRESS
        journey.paused_at = None
        journey.pause_reason = None
        journey_store.touch(journey, ts)
        journey_store.record_activity(
            journey,
            ActivityType.JOURNEY_RESUMED,
            "Journey Resumed",
            f"Journey resumed after {paused_days} day(s); {shifted} due date(s) extended",
            payload={"paused_days": paused_days, "phases_shifted": shifted},
            actor_id=actor_id,
            now=ts,
        )
        uow.flush()
        return journey_store.journey_snapshot(journey, now=ts)

    result = with_transaction(_resume)
    logger.info("Journey %s resumed", journey_id, extra={"journey_id": journey_id})
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Read models
# ═════════════════════════════════════════════════════════════════════════════


def get_journey(journey_id: int, now: datetime | None = None) -> dict:
    """Journey with phases, progress and recent activity."""
    now = now or utcnow()
    journey = journey_store.get_journey(journey_id)
    d = journey_store.journey_snapshot(journey, now=now)
    d["employee"] = journey.employee.to_dict() if journey.employee else None
    d["progress"] = calculate_phase_progress(journey.id, now=now)
    d["activities"] = [a.to_dict() for a in journey_store.list_activities(journey.id, _page_size())]
    return d


def get_employee_journey(employee_id: int, now: datetime | None = None) -> dict | None:
    """The employee's active journey, else their latest one, else None."""
    journey_store.get_user(employee_id)
    journey = journey_store.find_latest_journey(employee_id)
    if journey is None:
        return None
    return get_journey(journey.id, now=now)


def list_journeys(
    employee_type: str | None = None,
    status: str | None = None,
    department: str | None = None,
    search: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Filterable journey list with per-journey progress."""
    if employee_type and employee_type not in EmployeeType.ALL:
        raise ValidationError(
            f"Invalid employee_type '{employee_type}'", details={"employee_type": "invalid"},
        )
    if status and status not in JourneyStatus.ALL:
        raise ValidationError(f"Invalid status '{status}'", details={"status": "invalid"})

    now = now or utcnow()
    q = Journey.query.join(User, Journey.employee_id == User.id)
    if employee_type:
        q = q.filter(Journey.employee_type == employee_type)
    if status:
        q = q.filter(Journey.status == status)
    if department:
        q = q.filter(User.department == department)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(User.full_name.ilike(term), User.email.ilike(term)))

    items = []
    for journey in q.order_by(Journey.created_at.desc(), Journey.id.desc()).all():
        d = journey.to_dict()
        d["employee"] = journey.employee.to_dict() if journey.employee else None
        d["progress"] = calculate_phase_progress(journey.id, now=now)
        items.append(d)
    return items


def get_journey_statistics(now: datetime | None = None) -> dict:
    """Dashboard counters. Overdue phases are derived from due dates."""
    now = now or utcnow()

    by_status = dict(
        db.session.query(Journey.status, func.count(Journey.id))
        .group_by(Journey.status)
        .all()
    )
    by_type = dict(
        db.session.query(Journey.employee_type, func.count(Journey.id))
        .filter(Journey.status.in_(JourneyStatus.ACTIVE))
        .group_by(Journey.employee_type)
        .all()
    )
    overdue = (
        db.session.query(func.count(JourneyPhase.id))
        .join(Journey, JourneyPhase.journey_id == Journey.id)
        .filter(
            JourneyPhase.status.in_(PhaseStatus.ACTIVE),
            JourneyPhase.due_date < now,
            Journey.status == JourneyStatus.IN_PROGRESS,
        )
        .scalar()
    )
    recent = (
        JourneyActivity.query
        .order_by(JourneyActivity.created_at.desc(), JourneyActivity.id.desc())
        .limit(10)
        .all()
    )

    return {
        "active_journeys": by_status.get(JourneyStatus.IN_PROGRESS, 0),
        "completed_journeys": by_status.get(JourneyStatus.COMPLETED, 0),
        "paused_journeys": by_status.get(JourneyStatus.PAUSED, 0),
        "overdue_phases": overdue or 0,
        "new_employee_journeys": by_type.get(EmployeeType.NEW_EMPLOYEE, 0),
        "existing_employee_journeys": by_type.get(EmployeeType.EXISTING_EMPLOYEE, 0),
        "recent_activities": [a.to_dict() for a in recent],
    }


def get_default_phase_configs(employee_type: str) -> list[dict]:
    return default_phases_for(employee_type)


def _page_size() -> int:
    if has_app_context():
        return int(current_app.config.get("JOURNEY_ACTIVITY_PAGE_SIZE", 50))
    return 50
