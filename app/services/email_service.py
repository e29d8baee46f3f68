"""
Employee Journey Engine
Email Service.

Provides email sending capabilities with template support.
When SMTP is not configured, emails are logged but not sent (dev/test mode).

Uses:
    - Flask-Mail compatible config (MAIL_SERVER, MAIL_PORT, etc.)
    - Falls back to logging-only mode when SMTP is not configured
    - All emails are recorded in EmailLog for audit

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

from app.models import db
from app.models.notification import EmailLog
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Email Templates
# ═══════════════════════════════════════════════════════════════════════════

_HEADER = """
        <div style="font-family: 'Inter', Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: {header_color}; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
                <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
            </div>
            <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
"""

_FOOTER = """
            </div>
            <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                        border: 1px solid #e2e8f0; border-top: none; text-align: center;">
                <p style="color: #94a3b8; font-size: 12px; margin: 0;">
                    Employee Journey Engine — Automated notification
                </p>
            </div>
        </div>
"""

_TEMPLATES: dict[str, dict[str, str]] = {
    "mentor_assigned": {
        "subject": "You have been assigned as a mentor for {employee_name}",
        "title": "Mentor assignment: {phase_title}",
        "message": (
            "You are now the mentor of {employee_name} for the phase "
            "\"{phase_title}\" (start: {start_date}, duration: {duration_days} days)."
        ),
        "html": _HEADER.replace("{header_color}", "#1e293b").replace("{heading}", "New Mentor Assignment")
        + """
                <p style="color: #1e293b;">Hello {mentor_name},</p>
                <p style="color: #64748b; line-height: 1.6;">
                    You have been assigned as the mentor of <strong>{employee_name}</strong>.
                </p>
                <table style="width: 100%; border-collapse: collapse; margin: 12px 0;">
                    <tr><td style="padding: 6px 0; color: #64748b;">Phase</td>
                        <td style="padding: 6px 0;"><strong>{phase_title}</strong></td></tr>
                    <tr><td style="padding: 6px 0; color: #64748b;">Start date</td>
                        <td style="padding: 6px 0;">{start_date}</td></tr>
                    <tr><td style="padding: 6px 0; color: #64748b;">Duration</td>
                        <td style="padding: 6px 0;">{duration_days} days</td></tr>
                </table>
"""
        + _FOOTER,
    },
    "phase_overdue": {
        "subject": "Journey phase overdue: {phase_title}",
        "title": "Phase overdue: {phase_title}",
        "message": (
            "The phase \"{phase_title}\" of {employee_name}'s journey was due on "
            "{due_date} and is {days_overdue} day(s) overdue."
        ),
        "html": _HEADER.replace("{header_color}", "#dc2626").replace("{heading}", "⚠ Phase Overdue")
        + """
                <p style="color: #1e293b;">Hello {recipient_name},</p>
                <p style="color: #64748b; line-height: 1.6;">
                    The phase <strong>{phase_title}</strong> of {employee_name}'s journey
                    was due on <strong>{due_date}</strong> and is now
                    <strong>{days_overdue}</strong> day(s) overdue.
                </p>
"""
        + _FOOTER,
    },
}


class EmailService:
    """
    Email sending service with template support.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def render(template_name: str, context: dict[str, Any]) -> dict[str, str] | None:
        """Interpolate every part of a template. Missing keys stay as ``{key}``."""
        template = _TEMPLATES.get(template_name)
        if not template:
            return None
        return {part: text.format_map(_SafeDict(context)) for part, text in template.items()}

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        template_name: str | None = None,
        notification_id: int | None = None,
    ) -> EmailLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        (in dev mode) to simulate sending without actual delivery.

        Returns:
            The EmailLog record for this email.
        """
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            status="queued",
            notification_id=notification_id,
        )
        db.session.add(log)
        db.session.flush()

        if not cls.is_configured():
            # Dev/test mode: log only
            log.status = "sent"
            log.sent_at = utcnow()
            logger.info(
                "Email (dev mode): to=%s subject='%s' template=%s",
                to_email, subject, template_name,
            )
            return log

        try:
            cls._send_smtp(to_email=to_email, to_name=to_name, subject=subject,
                           html_body=html_body, text_body=text_body)
            log.status = "sent"
            log.sent_at = utcnow()
            logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", to_email, exc)

        return log

    @staticmethod
    def _send_smtp(*, to_email: str, to_name: str | None,
                   subject: str, html_body: str, text_body: str | None) -> None:
        """Send a multipart/alternative message; the plain part comes first."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
