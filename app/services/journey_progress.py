"""
Progress calculation — read-side aggregation over persisted phase statuses.

No writes, no side effects.
"""

from __future__ import annotations

import math
from datetime import datetime

from app.models.journey import EmployeeType, PhaseStatus
from app.services import journey_store
from app.utils.helpers import iso, utcnow

_SECONDS_PER_DAY = 24 * 60 * 60


def calculate_phase_progress(journey_id: int, now: datetime | None = None) -> dict:
    """Return completion counters for a journey.

    Returns:
        {
            "completed_count": int,
            "total_count": int,
            "percentage": int,           # rounded, 0 when the journey has no phases
            "current_phase": int,        # active phase_number, 0 if none
            "current_phase_status": str | None,
            # NEW_EMPLOYEE journeys with a start date only:
            "days_elapsed": int,
            "days_remaining": int,
            "expected_completion_date": str | None,
        }

    Raises:
        NotFoundError: journey does not exist.
    """
    now = now or utcnow()
    journey = journey_store.get_journey(journey_id)
    phases = journey_store.list_phases(journey_id)

    total = len(phases)
    completed = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    current = next((p for p in phases if p.is_active), None)

    result = {
        "completed_count": completed,
        "total_count": total,
        "percentage": _round_half_up(completed * 100 / total) if total else 0,
        "current_phase": current.phase_number if current else 0,
        "current_phase_status": current.status_at(now) if current else None,
    }

    if journey.employee_type == EmployeeType.NEW_EMPLOYEE and journey.started_at and phases:
        last_due = phases[-1].due_date
        if last_due is not None:
            days_elapsed = math.floor((now - journey.started_at).total_seconds() / _SECONDS_PER_DAY)
            total_days = math.floor((last_due - journey.started_at).total_seconds() / _SECONDS_PER_DAY)
            result["days_elapsed"] = max(0, days_elapsed)
            result["days_remaining"] = max(0, total_days - days_elapsed)
            result["expected_completion_date"] = iso(last_due)

    return result


def _round_half_up(value: float) -> int:
    # Half-up: 12.5 -> 13.
    return int(math.floor(value + 0.5))
