"""
Default phase templates and phase-config validation.

NEW_EMPLOYEE journeys follow a 90-day induction path; EXISTING_EMPLOYEE
journeys follow a repeating development cycle.

A phase config is a plain dict:
    {"phase_type": str, "title": str, "description": str,
     "duration_days": int, "mentor_id": int | None}
"""

from __future__ import annotations

import copy

from app.core.exceptions import ValidationError
from app.models.journey import EmployeeType, PhaseType

DEFAULT_NEW_EMPLOYEE_PHASES: list[dict] = [
    {
        "phase_type": PhaseType.INDUCTION_INITIAL_ASSESSMENT,
        "title": "Initial Assessment",
        "description": "Baseline skills assessment for new employee",
        "duration_days": 2,
    },
    {
        "phase_type": PhaseType.INDUCTION_TRAINING,
        "title": "Induction Training",
        "description": "Company orientation and initial training",
        "duration_days": 15,
    },
    {
        "phase_type": PhaseType.SKILL_ASSESSMENT,
        "title": "Skill Assessment",
        "description": "Comprehensive skill evaluation",
        "duration_days": 3,
    },
    {
        "phase_type": PhaseType.TNA_GENERATION,
        "title": "TNA Generation",
        "description": "Training Needs Analysis and planning",
        "duration_days": 5,
    },
    {
        "phase_type": PhaseType.PROGRESS_TRACKING,
        "title": "Training Execution & Progress Tracking",
        "description": "Execute training plan and track progress",
        "duration_days": 15,
    },
    {
        "phase_type": PhaseType.FEEDBACK_COLLECTION,
        "title": "Feedback Collection",
        "description": "Collect feedback on training effectiveness",
        "duration_days": 2,
    },
    {
        "phase_type": PhaseType.POST_ASSESSMENT,
        "title": "Post-Assessment",
        "description": "Final assessment to validate skill acquisition",
        "duration_days": 3,
    },
]

DEFAULT_EXISTING_EMPLOYEE_PHASES: list[dict] = [
    {
        "phase_type": PhaseType.ROLE_ASSESSMENT,
        "title": "Role Assessment",
        "description": "Assess skills against role requirements",
        "duration_days": 3,
    },
    {
        "phase_type": PhaseType.TRAINING_ASSIGNMENT,
        "title": "Training Assignment",
        "description": "Assign training based on skill gaps",
        "duration_days": 2,
    },
    {
        "phase_type": PhaseType.TRAINING_EXECUTION,
        "title": "Training Execution",
        "description": "Complete assigned training",
        "duration_days": 30,
    },
    {
        "phase_type": PhaseType.RE_ASSESSMENT,
        "title": "Re-Assessment",
        "description": "Validate skill improvement",
        "duration_days": 2,
    },
    {
        "phase_type": PhaseType.MATRIX_UPDATE,
        "title": "Matrix Update",
        "description": "Update skill matrix with new proficiency levels",
        "duration_days": 1,
    },
]


def validate_employee_type(employee_type: str) -> str:
    if employee_type not in EmployeeType.ALL:
        raise ValidationError(
            f"Invalid employee_type '{employee_type}'. "
            f"Must be one of: {', '.join(sorted(EmployeeType.ALL))}",
            details={"employee_type": "invalid"},
        )
    return employee_type


def default_phases_for(employee_type: str) -> list[dict]:
    """Return a copy of the default template for an employee type."""
    validate_employee_type(employee_type)
    if employee_type == EmployeeType.NEW_EMPLOYEE:
        return copy.deepcopy(DEFAULT_NEW_EMPLOYEE_PHASES)
    return copy.deepcopy(DEFAULT_EXISTING_EMPLOYEE_PHASES)


def clean_text(data: dict, field: str, errors: dict[str, str], key: str | None = None) -> str:
    """Return ``data[field]`` stripped, or record an error if it is not a string."""
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        errors[key or field] = f"{field} must be a string"
        return ""
    return value.strip()


def normalize_phase_config(data: dict | None, *, field_prefix: str = "") -> dict:
    """Validate one phase config and return it with defaults applied.

    Raises:
        ValidationError: not an object, missing or non-string title, unknown
            phase_type, or a non-positive / non-integer duration.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError(
            "Phase configuration must be an object",
            details={field_prefix.rstrip(".") or "phase": "invalid"},
        )
    errors: dict[str, str] = {}

    title_key = f"{field_prefix}title"
    title = clean_text(data, "title", errors, title_key)
    if not title and title_key not in errors:
        errors[title_key] = "title is required"
    elif len(title) > 300:
        errors[title_key] = "title must be ≤ 300 characters"

    description = clean_text(data, "description", errors, f"{field_prefix}description")

    phase_type = data.get("phase_type") or PhaseType.CUSTOM
    if not isinstance(phase_type, str) or phase_type not in PhaseType.ALL:
        errors[f"{field_prefix}phase_type"] = f"unknown phase_type '{phase_type}'"

    duration = data.get("duration_days")
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        errors[f"{field_prefix}duration_days"] = "duration_days must be a positive integer"

    mentor_id = data.get("mentor_id")
    if mentor_id is not None and (isinstance(mentor_id, bool) or not isinstance(mentor_id, int)):
        errors[f"{field_prefix}mentor_id"] = "mentor_id must be an integer"

    if errors:
        raise ValidationError("Invalid phase configuration", details=errors)

    return {
        "phase_type": phase_type,
        "title": title,
        "description": description,
        "duration_days": duration,
        "mentor_id": mentor_id,
    }


def normalize_phase_configs(configs: list[dict] | None) -> list[dict]:
    if not isinstance(configs, list) or not configs:
        raise ValidationError(
            "custom_phases must be a non-empty list", details={"custom_phases": "empty"},
        )
    return [
        normalize_phase_config(cfg, field_prefix=f"custom_phases[{i}].")
        for i, cfg in enumerate(configs)
    ]
