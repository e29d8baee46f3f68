"""
Employee Journey Engine
Notification Service.

Central service for creating and querying notifications. Journey events
(mentor assignment, overdue phases) reach users through notify(), which
stores an in-app Notification and mails the same template via EmailService.

notify() commits its own rows; callers invoke it after their unit of work
has committed (UnitOfWork.after_commit), never inside it.
"""

import logging

from app.models import db
from app.models.auth import User
from app.models.notification import Notification
from app.services.email_service import EmailService
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(recipient_id, template_kind, template_data=None, *, severity="info", send_email=True):
        """
        Notify one user using a named template.

        Returns:
            The created Notification, or None if the recipient or the
            template does not exist.
        """
        data = dict(template_data or {})
        recipient = db.session.get(User, recipient_id)
        if recipient is None:
            logger.warning("Notification %s skipped: user %s not found", template_kind, recipient_id)
            return None

        rendered = EmailService.render(template_kind, data)
        if rendered is None:
            logger.warning("Notification template not found: %s", template_kind)
            return None

        notif = Notification(
            recipient_id=recipient.id,
            template_kind=template_kind,
            title=rendered["title"][:300],
            message=rendered["message"],
            severity=severity,
            template_data=data,
            journey_id=data.get("journey_id"),
            phase_id=data.get("phase_id"),
        )
        db.session.add(notif)
        db.session.flush()

        if send_email and recipient.email:
            EmailService.send(
                to_email=recipient.email,
                to_name=recipient.display_name,
                subject=rendered["subject"],
                html_body=rendered["html"],
                text_body=rendered["message"],
                template_name=template_kind,
                notification_id=notif.id,
            )

        db.session.commit()
        logger.info(
            "Notification %s sent to user %s", template_kind, recipient.id,
            extra={"journey_id": notif.journey_id, "phase_id": notif.phase_id},
        )
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
        count = q.update({"is_read": True, "read_at": utcnow()}, synchronize_session="fetch")
        db.session.commit()
        return count
