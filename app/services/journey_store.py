"""
Journey Store — repository queries used by the journey engine.

All lookups the engine relies on go through here so the business rules in
the other services never build ad hoc queries:

    - get_* helpers raise NotFoundError instead of returning None
    - lock_journey() takes the row lock (SELECT ... FOR UPDATE where the
      backend supports it) and refreshes the identity map from the database
    - find_active_phase() is the explicit "current phase" query
    - record_activity() is the only way JourneyActivity rows are created
    - touch() bumps the journey version so concurrent units conflict
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.auth import User
from app.models.journey import (
    Journey,
    JourneyActivity,
    JourneyPhase,
    JourneyStatus,
    PhaseStatus,
)
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ── Users ────────────────────────────────────────────────────────────────────


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


# ── Journeys ─────────────────────────────────────────────────────────────────


def get_journey(journey_id: int) -> Journey:
    journey = db.session.get(Journey, journey_id)
    if journey is None:
        raise NotFoundError(resource="Journey", resource_id=journey_id)
    return journey


def lock_journey(journey_id: int) -> Journey:
    """Load the journey row under a write lock with fresh column values."""
    stmt = (
        select(Journey)
        .where(Journey.id == journey_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    journey = db.session.execute(stmt).scalar_one_or_none()
    if journey is None:
        raise NotFoundError(resource="Journey", resource_id=journey_id)
    return journey


def find_active_journey(employee_id: int) -> Journey | None:
    """Return the employee's NOT_STARTED / IN_PROGRESS / PAUSED journey, if any."""
    stmt = (
        select(Journey)
        .where(
            Journey.employee_id == employee_id,
            Journey.status.in_(JourneyStatus.ACTIVE),
        )
        .execution_options(populate_existing=True)
    )
    return db.session.execute(stmt).scalars().first()


def find_latest_journey(employee_id: int) -> Journey | None:
    """Active journey if there is one, else the most recently created."""
    active = find_active_journey(employee_id)
    if active is not None:
        return active
    return (
        Journey.query.filter_by(employee_id=employee_id)
        .order_by(Journey.cycle_number.desc(), Journey.id.desc())
        .first()
    )


def journey_snapshot(journey: Journey, now: datetime | None = None) -> dict:
    """Journey dict with its phases read fresh from the database."""
    now = now or utcnow()
    d = journey.to_dict()
    d["phases"] = [p.to_dict(now=now) for p in list_phases(journey.id)]
    return d


def touch(journey: Journey, now: datetime | None = None) -> None:
    """Mark the journey modified; the flush bumps ``Journey.version``."""
    journey.updated_at = now or utcnow()


# ── Phases ───────────────────────────────────────────────────────────────────


def find_phase(phase_id: int) -> JourneyPhase | None:
    return db.session.get(JourneyPhase, phase_id)


def get_phase(phase_id: int) -> JourneyPhase:
    phase = find_phase(phase_id)
    if phase is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id)
    return phase


def refresh_phase(phase_id: int) -> JourneyPhase:
    """Re-read a phase after its journey has been locked."""
    stmt = (
        select(JourneyPhase)
        .where(JourneyPhase.id == phase_id)
        .execution_options(populate_existing=True)
    )
    phase = db.session.execute(stmt).scalar_one_or_none()
    if phase is None:
        raise NotFoundError(resource="Phase", resource_id=phase_id)
    return phase


def list_phases(journey_id: int) -> list[JourneyPhase]:
    """Phases of a journey ordered by phase_number, freshly read."""
    stmt = (
        select(JourneyPhase)
        .where(JourneyPhase.journey_id == journey_id)
        .order_by(JourneyPhase.phase_number)
        .execution_options(populate_existing=True)
    )
    return list(db.session.execute(stmt).scalars())


def get_phase_by_number(journey_id: int, phase_number: int) -> JourneyPhase:
    phase = (
        JourneyPhase.query
        .filter_by(journey_id=journey_id, phase_number=phase_number)
        .first()
    )
    if phase is None:
        raise NotFoundError(resource="Phase", resource_id=f"{journey_id}#{phase_number}")
    return phase


def count_phases(journey_id: int) -> int:
    return db.session.execute(
        select(func.count(JourneyPhase.id)).where(JourneyPhase.journey_id == journey_id)
    ).scalar_one()


def find_active_phase(journey_id: int) -> JourneyPhase | None:
    """The journey's current IN_PROGRESS (or legacy OVERDUE) phase.

    Unique by invariant; if more than one row matches, the lowest number wins
    and the inconsistency is logged.
    """
    stmt = (
        select(JourneyPhase)
        .where(
            JourneyPhase.journey_id == journey_id,
            JourneyPhase.status.in_(PhaseStatus.ACTIVE),
        )
        .order_by(JourneyPhase.phase_number)
        .execution_options(populate_existing=True)
    )
    active = list(db.session.execute(stmt).scalars())
    if len(active) > 1:
        logger.error(
            "Journey %s has %d active phases", journey_id, len(active),
            extra={"journey_id": journey_id},
        )
    return active[0] if active else None


def find_phases_for_mentor(mentor_id: int) -> list[JourneyPhase]:
    return (
        JourneyPhase.query
        .filter_by(mentor_id=mentor_id)
        .order_by(JourneyPhase.started_at.desc().nullslast(), JourneyPhase.id.desc())
        .all()
    )


# ── Activities (append-only) ─────────────────────────────────────────────────


def record_activity(
    journey: Journey,
    activity_type: str,
    title: str,
    description: str = "",
    *,
    phase_number: int | None = None,
    payload: dict | None = None,
    actor_id: int | None = None,
    now: datetime | None = None,
) -> JourneyActivity:
    """Append one activity row to the current unit of work."""
    activity = JourneyActivity(
        journey_id=journey.id,
        phase_number=phase_number,
        activity_type=activity_type,
        title=title,
        description=description,
        payload=payload,
        actor_user_id=actor_id,
        created_at=now or utcnow(),
    )
    db.session.add(activity)
    logger.debug(
        "Activity %s on journey %s", activity_type, journey.id,
        extra={"journey_id": journey.id, "activity_type": activity_type},
    )
    return activity


def list_activities(journey_id: int, limit: int = 50) -> list[JourneyActivity]:
    """Newest first, for display."""
    return (
        JourneyActivity.query
        .filter_by(journey_id=journey_id)
        .order_by(JourneyActivity.created_at.desc(), JourneyActivity.id.desc())
        .limit(limit)
        .all()
    )
