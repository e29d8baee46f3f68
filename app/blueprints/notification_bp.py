"""
Notification & Scheduling Blueprint.

Provides:
    GET   /api/v1/users/<id>/notifications          in-app notifications, newest first
    POST  /api/v1/notifications/<id>/read           mark one read
    POST  /api/v1/users/<id>/notifications/read-all mark all read
    GET   /api/v1/scheduler/jobs                    registered jobs + last run
    POST  /api/v1/scheduler/jobs/<name>/run         trigger a job now
    PATCH /api/v1/scheduler/jobs/<name>             { "is_enabled": bool }
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import page_params
from app.core.exceptions import NotFoundError, ValidationError
from app.services.notification import NotificationService
from app.services.scheduler_service import SchedulerService, get_registered_jobs
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")

register_error_handlers(notification_bp, logger)


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATIONS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/users/<int:user_id>/notifications", methods=["GET"])
def list_notifications(user_id):
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit, offset = page_params()

    items, total = NotificationService.list_for_recipient(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    }), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_notification_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/users/<int:user_id>/notifications/read-all", methods=["POST"])
def mark_all_notifications_read(user_id):
    count = NotificationService.mark_all_read(user_id)
    return jsonify({"marked_read": count}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
def list_jobs():
    return jsonify({"items": SchedulerService.list_jobs()}), 200


@notification_bp.route("/scheduler/jobs/<job_name>/run", methods=["POST"])
def run_job(job_name):
    if job_name not in get_registered_jobs():
        raise NotFoundError(resource="Job", resource_id=job_name)
    result = SchedulerService.run_job(job_name)
    status = 200 if result["status"] in ("success", "skipped") else 500
    return jsonify(result), status


@notification_bp.route("/scheduler/jobs/<job_name>", methods=["PATCH"])
def toggle_job(job_name):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not isinstance(data.get("is_enabled"), bool):
        raise ValidationError("is_enabled must be a boolean", details={"is_enabled": "invalid"})
    SchedulerService.ensure_jobs_registered()
    job = SchedulerService.toggle_job(job_name, data["is_enabled"])
    if job is None:
        raise NotFoundError(resource="Job", resource_id=job_name)
    return jsonify(job), 200
