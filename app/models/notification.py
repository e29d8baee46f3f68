"""
Employee Journey Engine
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
    - EmailLog: outbound email audit log
"""

from app.models import db
from app.utils.helpers import iso, utcnow


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event. ``template_kind`` names the
    EmailService template the same event is mailed with.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_kind = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), default="info")
    template_data = db.Column(db.JSON, nullable=True)

    # Link to source entity
    journey_id = db.Column(db.Integer, nullable=True, index=True)
    phase_id = db.Column(db.Integer, nullable=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)

    def mark_read(self):
        self.is_read = True
        self.read_at = utcnow()

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "template_kind": self.template_kind,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "template_data": self.template_data,
            "journey_id": self.journey_id,
            "phase_id": self.phase_id,
            "is_read": self.is_read,
            "read_at": iso(self.read_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"


class EmailLog(db.Model):
    """
    Outbound email audit log.

    Every email sent by the engine is logged here for audit/debug.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True,
                              comment="Email template used")
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed")
    error_message = db.Column(db.Text, nullable=True)

    notification_id = db.Column(db.Integer, nullable=True,
                                comment="Related notification ID if applicable")

    sent_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "notification_id": self.notification_id,
            "sent_at": iso(self.sent_at),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<EmailLog {self.id}: {self.subject[:40]} → {self.recipient_email}>"
