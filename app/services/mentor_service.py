"""
Mentor Assignment Coordinator.

assign_mentor_to_phase:
    1. set JourneyPhase.mentor_id
    2. grant the MENTOR capability (set union, no-op if already held)
    3. append MENTOR_ASSIGNED
    4. after commit: notify the mentor ("mentor_assigned" template)

Step 4 runs outside the transaction; a failed notification is logged and the
assignment stays committed.
"""

from __future__ import annotations

import logging

from app.models.auth import CAPABILITY_MENTOR, User
from app.models.journey import ActivityType
from app.services import journey_store
from app.services.notification import NotificationService
from app.services.unit_of_work import with_transaction
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

MENTOR_ASSIGNED_TEMPLATE = "mentor_assigned"


def grant_mentor_capability(user: User) -> bool:
    """Add MENTOR to the user's capabilities. Returns True if it was newly granted."""
    current = user.capabilities
    if current.has(CAPABILITY_MENTOR):
        return False
    user.capabilities = current.union(CAPABILITY_MENTOR)
    logger.info("Granted MENTOR capability to user %s", user.id, extra={"employee_id": user.id})
    return True


def assign_mentor_to_phase(
    phase_id: int,
    mentor_id: int,
    notify: bool = True,
    actor_id: int | None = None,
) -> dict:
    """Attach a mentor to a phase.

    Returns:
        The updated phase dict plus ``capability_granted``.

    Raises:
        NotFoundError: phase or mentor user does not exist.
    """

    def _assign(uow):
        now = utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)
        mentor = journey_store.get_user(mentor_id)

        granted = grant_mentor_capability(mentor)
        phase.mentor_id = mentor.id
        journey_store.touch(journey, now)
        journey_store.record_activity(
            journey,
            ActivityType.MENTOR_ASSIGNED,
            "Mentor Assigned",
            f"{mentor.display_name} assigned as mentor for {phase.title}",
            phase_number=phase.phase_number,
            payload={"mentor_id": mentor.id, "capability_granted": granted},
            actor_id=actor_id,
            now=now,
        )
        uow.flush()

        if notify:
            employee = journey.employee
            uow.after_commit(
                NotificationService.notify,
                mentor.id,
                MENTOR_ASSIGNED_TEMPLATE,
                {
                    "mentor_name": mentor.display_name,
                    "employee_name": employee.display_name if employee else "",
                    "phase_title": phase.title,
                    "start_date": (
                        phase.started_at.strftime("%Y-%m-%d") if phase.started_at else "Not started yet"
                    ),
                    "duration_days": phase.duration_days,
                    "journey_id": journey.id,
                    "phase_id": phase.id,
                },
            )

        result = phase.to_dict(now=now)
        result["capability_granted"] = granted
        return result

    result = with_transaction(_assign)
    logger.info(
        "Mentor %s assigned to phase %s", mentor_id, phase_id,
        extra={"phase_id": phase_id},
    )
    return result


def remove_mentor_from_phase(phase_id: int, actor_id: int | None = None) -> dict:
    """Clear the phase's mentor and append MENTOR_REMOVED.

    The mentor keeps the MENTOR capability; other phases may still use it.
    """

    def _remove(uow):
        now = utcnow()
        phase = journey_store.get_phase(phase_id)
        journey = journey_store.lock_journey(phase.journey_id)
        phase = journey_store.refresh_phase(phase_id)

        previous = phase.mentor_id
        phase.mentor_id = None
        journey_store.touch(journey, now)
        journey_store.record_activity(
            journey,
            ActivityType.MENTOR_REMOVED,
            "Mentor Removed",
            f"Mentor removed from {phase.title}",
            phase_number=phase.phase_number,
            payload={"mentor_id": previous},
            actor_id=actor_id,
            now=now,
        )
        uow.flush()
        return phase.to_dict(now=now)

    return with_transaction(_remove)


def get_mentor_phases(mentor_id: int) -> list[dict]:
    """Phases mentored by a user, most recently started first."""
    journey_store.get_user(mentor_id)
    now = utcnow()
    items = []
    for phase in journey_store.find_phases_for_mentor(mentor_id):
        d = phase.to_dict(now=now)
        journey = phase.journey
        d["journey_status"] = journey.status
        d["employee"] = journey.employee.to_dict() if journey.employee else None
        items.append(d)
    return items
