"""
Journey Blueprint — admin/HR surface of the journey engine.

Endpoints (all under /api/v1):
    POST   /journeys                              create + start a journey
    GET    /journeys                              list (employee_type, status, department, search, limit, offset)
    GET    /journeys/stats                        dashboard counters
    GET    /journeys/templates/<employee_type>    default phase configs
    GET    /journeys/<id>                         detail with phases, progress, activity
    GET    /journeys/<id>/progress                progress counters only
    POST   /journeys/<id>/pause                   { "reason": str }
    POST   /journeys/<id>/resume
    POST   /journeys/<id>/advance                 complete the active phase
    POST   /journeys/<id>/phases                  insert { ...phase config, "insert_after_phase_number" }
    POST   /journeys/<id>/phases/<n>/skip         { "reason": str }

    PATCH  /phases/<id>                           { "title", "description", "duration_days" }
    DELETE /phases/<id>
    POST   /phases/<id>/complete                  { "notes": str }
    PUT    /phases/<id>/mentor                    { "mentor_id": int, "notify": bool }
    DELETE /phases/<id>/mentor
    POST   /phases/<id>/assessment                { "assessment_id": str }
    POST   /phases/<id>/training                  { "training_assignment_id": str }

    GET    /employees/<id>/journey                active (else latest) journey
    GET    /mentors/<id>/phases                   phases mentored by a user

Layer contract:
    - Blueprint: parse + validate input shape, call service, return JSON.
    - NO db.session calls here; all writes owned by the services.
    - The acting user arrives in the X-User-ID header set by the gateway.
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import page_params
from app.core.exceptions import ValidationError
from app.services import (
    auto_advance,
    journey_progress,
    journey_service,
    mentor_service,
    phase_renumbering,
)
from app.utils.errors import register_error_handlers
from app.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

journey_bp = Blueprint("journeys", __name__, url_prefix="/api/v1")

register_error_handlers(journey_bp, logger)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _actor_id():
    raw = request.headers.get("X-User-ID")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("X-User-ID header must be an integer", details={"X-User-ID": "invalid"})


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _optional_str(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    return value


def _require_int(data: dict, field: str) -> int:
    value = data.get(field)
    if value is None or value == "":
        raise ValidationError(f"{field} is required", details={field: "required"})
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})


# ═════════════════════════════════════════════════════════════════════════════
# Journeys
# ═════════════════════════════════════════════════════════════════════════════


@journey_bp.route("/journeys", methods=["POST"])
def create_journey():
    data = _json_body()
    employee_id = _require_int(data, "employee_id")
    employee_type = (_optional_str(data, "employee_type") or "").strip()
    if not employee_type:
        raise ValidationError("employee_type is required", details={"employee_type": "required"})

    start_date = None
    if data.get("start_date"):
        start_date = parse_datetime(data["start_date"])
        if start_date is None:
            raise ValidationError("start_date is not a valid date", details={"start_date": "invalid"})

    journey = journey_service.create_journey(
        employee_id,
        employee_type,
        custom_phases=data.get("custom_phases"),
        start_date=start_date,
        actor_id=_actor_id(),
    )
    return jsonify(journey), 201


@journey_bp.route("/journeys", methods=["GET"])
def list_journeys():
    items = journey_service.list_journeys(
        employee_type=request.args.get("employee_type") or None,
        status=request.args.get("status") or None,
        department=request.args.get("department") or None,
        search=request.args.get("search") or None,
    )
    limit, offset = page_params(default_limit=100, max_limit=500)
    return jsonify({
        "items": items[offset:offset + limit],
        "total": len(items),
        "limit": limit,
        "offset": offset,
    }), 200


@journey_bp.route("/journeys/stats", methods=["GET"])
def journey_stats():
    return jsonify(journey_service.get_journey_statistics()), 200


@journey_bp.route("/journeys/templates/<employee_type>", methods=["GET"])
def journey_template(employee_type):
    phases = journey_service.get_default_phase_configs(employee_type)
    return jsonify({"employee_type": employee_type, "phases": phases}), 200


@journey_bp.route("/journeys/<int:journey_id>", methods=["GET"])
def get_journey(journey_id):
    return jsonify(journey_service.get_journey(journey_id)), 200


@journey_bp.route("/journeys/<int:journey_id>/progress", methods=["GET"])
def journey_progress_view(journey_id):
    return jsonify(journey_progress.calculate_phase_progress(journey_id)), 200


@journey_bp.route("/journeys/<int:journey_id>/pause", methods=["POST"])
def pause_journey(journey_id):
    data = _json_body()
    journey = journey_service.pause_journey(
        journey_id, reason=_optional_str(data, "reason"), actor_id=_actor_id(),
    )
    return jsonify(journey), 200


@journey_bp.route("/journeys/<int:journey_id>/resume", methods=["POST"])
def resume_journey(journey_id):
    journey = journey_service.resume_journey(journey_id, actor_id=_actor_id())
    return jsonify(journey), 200


@journey_bp.route("/journeys/<int:journey_id>/advance", methods=["POST"])
def advance_journey(journey_id):
    data = _json_body()
    notes = _optional_str(data, "notes")
    payload = {"notes": notes} if notes else None
    advanced = auto_advance.auto_advance_phase(
        journey_id, auto_advance.CAUSE_MANUAL_ADVANCE, payload, actor_id=_actor_id(),
    )
    return jsonify({"advanced": advanced, "journey": journey_service.get_journey(journey_id)}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


@journey_bp.route("/journeys/<int:journey_id>/phases", methods=["POST"])
def insert_phase(journey_id):
    data = _json_body()
    after = data.get("insert_after_phase_number")
    if after is not None:
        after = _require_int(data, "insert_after_phase_number")
    phase = phase_renumbering.insert_phase(
        journey_id, data, insert_after_phase_number=after, actor_id=_actor_id(),
    )
    return jsonify(phase), 201


@journey_bp.route("/journeys/<int:journey_id>/phases/<int:phase_number>/skip", methods=["POST"])
def skip_phase(journey_id, phase_number):
    data = _json_body()
    journey = auto_advance.skip_journey_phase(
        journey_id, phase_number, reason=_optional_str(data, "reason"), actor_id=_actor_id(),
    )
    return jsonify(journey), 200


@journey_bp.route("/phases/<int:phase_id>", methods=["PATCH"])
def update_phase(phase_id):
    phase = phase_renumbering.update_phase_details(phase_id, _json_body(), actor_id=_actor_id())
    return jsonify(phase), 200


@journey_bp.route("/phases/<int:phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    result = phase_renumbering.delete_phase(phase_id, actor_id=_actor_id())
    return jsonify(result), 200


@journey_bp.route("/phases/<int:phase_id>/complete", methods=["POST"])
def complete_phase(phase_id):
    data = _json_body()
    journey = auto_advance.manually_complete_phase(
        phase_id, completed_by=_actor_id(), notes=_optional_str(data, "notes"),
    )
    return jsonify(journey), 200


@journey_bp.route("/phases/<int:phase_id>/mentor", methods=["PUT"])
def assign_mentor(phase_id):
    data = _json_body()
    mentor_id = _require_int(data, "mentor_id")
    phase = mentor_service.assign_mentor_to_phase(
        phase_id, mentor_id, notify=bool(data.get("notify", True)), actor_id=_actor_id(),
    )
    return jsonify(phase), 200


@journey_bp.route("/phases/<int:phase_id>/mentor", methods=["DELETE"])
def remove_mentor(phase_id):
    return jsonify(mentor_service.remove_mentor_from_phase(phase_id, actor_id=_actor_id())), 200


@journey_bp.route("/phases/<int:phase_id>/assessment", methods=["POST"])
def link_assessment(phase_id):
    data = _json_body()
    phase = auto_advance.link_assessment_to_phase(
        phase_id, data.get("assessment_id"), actor_id=_actor_id(),
    )
    return jsonify(phase), 200


@journey_bp.route("/phases/<int:phase_id>/training", methods=["POST"])
def link_training(phase_id):
    data = _json_body()
    phase = auto_advance.link_training_to_phase(
        phase_id, data.get("training_assignment_id"), actor_id=_actor_id(),
    )
    return jsonify(phase), 200


# ═════════════════════════════════════════════════════════════════════════════
# People
# ═════════════════════════════════════════════════════════════════════════════


@journey_bp.route("/employees/<int:employee_id>/journey", methods=["GET"])
def employee_journey(employee_id):
    return jsonify({"journey": journey_service.get_employee_journey(employee_id)}), 200


@journey_bp.route("/mentors/<int:mentor_id>/phases", methods=["GET"])
def mentor_phases(mentor_id):
    items = mentor_service.get_mentor_phases(mentor_id)
    return jsonify({"items": items, "total": len(items)}), 200
