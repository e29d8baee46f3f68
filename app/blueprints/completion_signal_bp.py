"""
Completion Signal Blueprint — webhooks from the assessment and training subsystems.

Endpoints:
    POST /api/v1/signals/assessment-completed   { "phase_id": int, "assessment_id": str }
    POST /api/v1/signals/training-completed     { "phase_id": int, "training_assignment_id": str }

Both always answer 200 with {"advanced": bool} once the payload is valid:
a duplicate or stale signal is a normal outcome, not an error, so senders
may retry freely.

When SIGNAL_SHARED_SECRET is configured, callers must send
``Authorization: Bearer <secret>``.
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from app.core.exceptions import ValidationError
from app.services import auto_advance
from app.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

completion_signal_bp = Blueprint("completion_signals", __name__, url_prefix="/api/v1/signals")

register_error_handlers(completion_signal_bp, logger)


@completion_signal_bp.before_request
def _check_shared_secret():
    secret = current_app.config.get("SIGNAL_SHARED_SECRET")
    if not secret:
        return None
    header = request.headers.get("Authorization", "")
    token = header[7:] if header.startswith("Bearer ") else ""
    if not hmac.compare_digest(token.encode(), secret.encode()):
        logger.warning("Rejected completion signal from %s: bad token", request.remote_addr)
        return api_error(E.UNAUTHORIZED, "Invalid or missing signal token")
    return None


def _parse_signal(ref_field: str) -> tuple[int, str]:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    errors = {}
    phase_id = data.get("phase_id")
    try:
        if isinstance(phase_id, bool):
            raise TypeError(phase_id)
        phase_id = int(phase_id)
    except (TypeError, ValueError):
        errors["phase_id"] = "phase_id must be an integer"
    ref = data.get(ref_field)
    if isinstance(ref, bool) or (ref is not None and not isinstance(ref, (str, int))):
        errors[ref_field] = f"{ref_field} must be a string"
    elif ref is None or str(ref).strip() == "":
        errors[ref_field] = f"{ref_field} is required"
    if errors:
        raise ValidationError("Invalid completion signal", details=errors)
    return phase_id, str(ref).strip()


@completion_signal_bp.route("/assessment-completed", methods=["POST"])
def assessment_completed():
    phase_id, assessment_id = _parse_signal("assessment_id")
    advanced = auto_advance.handle_assessment_completed(phase_id, assessment_id)
    return jsonify({"advanced": advanced, "phase_id": phase_id}), 200


@completion_signal_bp.route("/training-completed", methods=["POST"])
def training_completed():
    phase_id, training_assignment_id = _parse_signal("training_assignment_id")
    advanced = auto_advance.handle_training_completed(phase_id, training_assignment_id)
    return jsonify({"advanced": advanced, "phase_id": phase_id}), 200
