"""
Employee Journey Engine
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - journey_overdue_reminder: Notifies employees and mentors about overdue phases
    - stale_notification_cleanup: Deletes old read notifications
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from app.models import db
from app.models.journey import Journey, JourneyPhase, JourneyStatus, PhaseStatus
from app.models.notification import Notification
from app.services.notification import NotificationService
from app.services.scheduler_service import register_job
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)

PHASE_OVERDUE_TEMPLATE = "phase_overdue"


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Overdue Reminder
# ═══════════════════════════════════════════════════════════════════════════

@register_job("journey_overdue_reminder")
def remind_overdue_phases(app, now=None) -> dict[str, Any]:
    """Notify employee and mentor once per overdue phase.

    Only the active phase of an IN_PROGRESS journey can be overdue; paused
    journeys are skipped. ``overdue_notified_at`` is reset when a phase
    starts, so a phase is reminded once per activation.
    """
    now = now or utcnow()
    results = {"phases_overdue": 0, "notifications_created": 0}

    overdue = (
        JourneyPhase.query
        .join(Journey, JourneyPhase.journey_id == Journey.id)
        .filter(
            Journey.status == JourneyStatus.IN_PROGRESS,
            JourneyPhase.status.in_(PhaseStatus.ACTIVE),
            JourneyPhase.due_date < now,
            JourneyPhase.overdue_notified_at.is_(None),
        )
        .order_by(JourneyPhase.due_date)
        .all()
    )

    for phase in overdue:
        journey = phase.journey
        employee = journey.employee
        data = {
            "employee_name": employee.display_name if employee else "",
            "phase_title": phase.title,
            "due_date": phase.due_date.strftime("%Y-%m-%d"),
            "days_overdue": max(1, (now - phase.due_date).days),
            "journey_id": journey.id,
            "phase_id": phase.id,
        }
        recipients = [journey.employee_id]
        if phase.mentor_id and phase.mentor_id != journey.employee_id:
            recipients.append(phase.mentor_id)

        # Stamped before sending: at most one reminder per activation.
        phase.overdue_notified_at = now
        db.session.commit()
        results["phases_overdue"] += 1

        for recipient_id in recipients:
            recipient_name = (
                employee.display_name if recipient_id == journey.employee_id and employee
                else (phase.mentor.display_name if phase.mentor else "")
            )
            notif = NotificationService.notify(
                recipient_id,
                PHASE_OVERDUE_TEMPLATE,
                {**data, "recipient_name": recipient_name},
                severity="warning",
            )
            if notif is not None:
                results["notifications_created"] += 1

    logger.info("Journey overdue reminder: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Stale Notification Cleanup
# ═══════════════════════════════════════════════════════════════════════════

@register_job("stale_notification_cleanup")
def cleanup_stale_notifications(app) -> dict[str, Any]:
    """Delete read notifications older than 30 days."""
    cutoff = utcnow() - timedelta(days=30)

    deleted = Notification.query.filter(
        Notification.is_read.is_(True),
        Notification.read_at < cutoff,
    ).delete(synchronize_session=False)
    db.session.commit()

    logger.info("Stale notification cleanup: deleted %d", deleted)
    return {"deleted": deleted}
