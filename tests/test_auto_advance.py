"""
Auto-advance trigger tests.

Covers:
    1. Linking assessments / training assignments to phases
    2. Completion signals (matching, duplicate, stale, unknown)
    3. Skip and manual completion
    4. EXISTING_EMPLOYEE cycle renewal
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import db
from app.models.journey import (
    ActivityType,
    EmployeeType,
    Journey,
    JourneyActivity,
    JourneyStatus,
    PhaseStatus,
)
from app.services import auto_advance, journey_store

T0 = datetime(2025, 1, 6, 9, 0, 0)


def _phases(journey_id):
    return journey_store.list_phases(journey_id)


def _activities(journey_id, activity_type):
    return (
        JourneyActivity.query
        .filter_by(journey_id=journey_id, activity_type=activity_type)
        .order_by(JourneyActivity.id)
        .all()
    )


# ═════════════════════════════════════════════════════════════════════════════
# Links
# ═════════════════════════════════════════════════════════════════════════════


class TestLinks:
    def test_link_assessment(self, new_journey, admin):
        first = _phases(new_journey["id"])[0]
        result = auto_advance.link_assessment_to_phase(first.id, " asm-1 ", actor_id=admin.id)
        assert result["linked_assessment_id"] == "asm-1"
        linked = _activities(new_journey["id"], ActivityType.ASSESSMENT_LINKED)
        assert len(linked) == 1
        assert linked[0].actor_user_id == admin.id
        assert linked[0].payload == {"assessment_id": "asm-1"}

    def test_link_assessment_requires_id(self, new_journey):
        first = _phases(new_journey["id"])[0]
        with pytest.raises(ValidationError):
            auto_advance.link_assessment_to_phase(first.id, "")

    def test_link_assessment_unknown_phase(self):
        with pytest.raises(NotFoundError):
            auto_advance.link_assessment_to_phase(999, "asm-1")

    def test_link_assessment_not_assignable(self, new_journey):
        first = _phases(new_journey["id"])[0]
        with patch.object(auto_advance.assessment_gateway, "is_assignable", return_value=False):
            with pytest.raises(InvalidStateError):
                auto_advance.link_assessment_to_phase(first.id, "draft-7")
        assert _phases(new_journey["id"])[0].linked_assessment_id is None

    def test_link_to_completed_phase_rejected(self, new_journey):
        first = _phases(new_journey["id"])[0]
        auto_advance.auto_advance_phase(new_journey["id"], auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            auto_advance.link_assessment_to_phase(first.id, "asm-1")
        with pytest.raises(InvalidStateError):
            auto_advance.link_training_to_phase(first.id, "tr-1")

    def test_link_training(self, new_journey):
        second = _phases(new_journey["id"])[1]
        result = auto_advance.link_training_to_phase(second.id, "tr-9")
        assert result["linked_training_assignment_id"] == "tr-9"
        assert len(_activities(new_journey["id"], ActivityType.TRAINING_LINKED)) == 1


# ═════════════════════════════════════════════════════════════════════════════
# Completion signals
# ═════════════════════════════════════════════════════════════════════════════


class TestCompletionSignals:
    def test_assessment_completion_advances(self, new_journey):
        first = _phases(new_journey["id"])[0]
        auto_advance.link_assessment_to_phase(first.id, "asm-1")

        assert auto_advance.handle_assessment_completed(first.id, "asm-1") is True

        first, second = _phases(new_journey["id"])[:2]
        assert first.status == PhaseStatus.COMPLETED
        assert second.status == PhaseStatus.IN_PROGRESS
        advanced = _activities(new_journey["id"], ActivityType.PHASE_ADVANCED)
        assert advanced[0].payload == {
            "assessment_id": "asm-1", "cause": auto_advance.CAUSE_ASSESSMENT_COMPLETED,
        }

    def test_duplicate_signal_is_ignored(self, new_journey):
        first = _phases(new_journey["id"])[0]
        auto_advance.link_assessment_to_phase(first.id, "asm-1")
        assert auto_advance.handle_assessment_completed(first.id, "asm-1") is True
        assert auto_advance.handle_assessment_completed(first.id, "asm-1") is False

        phases = _phases(new_journey["id"])
        assert phases[1].status == PhaseStatus.IN_PROGRESS
        assert phases[2].status == PhaseStatus.NOT_STARTED
        assert len(_activities(new_journey["id"], ActivityType.PHASE_ADVANCED)) == 1

    def test_unlinked_assessment_ignored(self, new_journey):
        first = _phases(new_journey["id"])[0]
        auto_advance.link_assessment_to_phase(first.id, "asm-1")
        assert auto_advance.handle_assessment_completed(first.id, "asm-2") is False
        assert _phases(new_journey["id"])[0].status == PhaseStatus.IN_PROGRESS

    def test_signal_for_future_phase_ignored(self, new_journey):
        third = _phases(new_journey["id"])[2]
        auto_advance.link_assessment_to_phase(third.id, "asm-3")
        assert auto_advance.handle_assessment_completed(third.id, "asm-3") is False
        phases = _phases(new_journey["id"])
        assert phases[0].status == PhaseStatus.IN_PROGRESS
        assert phases[2].status == PhaseStatus.NOT_STARTED

    def test_unknown_phase_ignored(self):
        assert auto_advance.handle_assessment_completed(999, "asm-1") is False
        assert auto_advance.handle_training_completed(999, "tr-1") is False

    def test_training_completion_advances(self, new_journey):
        first = _phases(new_journey["id"])[0]
        auto_advance.link_training_to_phase(first.id, "tr-1")
        assert auto_advance.handle_training_completed(first.id, "tr-1") is True
        assert _phases(new_journey["id"])[0].status == PhaseStatus.COMPLETED

    def test_paused_journey_still_accepts_completion(self, new_journey):
        from app.services import journey_service

        first = _phases(new_journey["id"])[0]
        auto_advance.link_training_to_phase(first.id, "tr-1")
        journey_service.pause_journey(new_journey["id"])
        assert auto_advance.handle_training_completed(first.id, "tr-1") is True
        assert db.session.get(Journey, new_journey["id"]).status == JourneyStatus.PAUSED


# ═════════════════════════════════════════════════════════════════════════════
# Skip / manual completion
# ═════════════════════════════════════════════════════════════════════════════


class TestSkipAndManualCompletion:
    def test_skip_active_phase(self, new_journey, admin):
        result = auto_advance.skip_journey_phase(
            new_journey["id"], 1, reason="Already certified", actor_id=admin.id, now=T0,
        )
        assert result["phases"][0]["status"] == PhaseStatus.COMPLETED
        assert result["phases"][1]["status"] == PhaseStatus.IN_PROGRESS
        skipped = _activities(new_journey["id"], ActivityType.PHASE_SKIPPED)
        assert len(skipped) == 1
        assert skipped[0].payload["reason"] == "Already certified"
        assert skipped[0].actor_user_id == admin.id
        assert not _activities(new_journey["id"], ActivityType.PHASE_ADVANCED)

    def test_skip_not_started_phase_rejected(self, new_journey):
        with pytest.raises(InvalidStateError):
            auto_advance.skip_journey_phase(new_journey["id"], 3)

    def test_skip_completed_phase_rejected(self, new_journey):
        auto_advance.skip_journey_phase(new_journey["id"], 1)
        with pytest.raises(InvalidStateError):
            auto_advance.skip_journey_phase(new_journey["id"], 1)

    def test_skip_unknown_phase_number(self, new_journey):
        with pytest.raises(NotFoundError):
            auto_advance.skip_journey_phase(new_journey["id"], 42)

    def test_manual_completion(self, new_journey, mentor):
        first = _phases(new_journey["id"])[0]
        result = auto_advance.manually_complete_phase(
            first.id, completed_by=mentor.id, notes=" signed off ", now=T0 + timedelta(hours=4),
        )
        assert result["phases"][0]["completed_at"] == (T0 + timedelta(hours=4)).isoformat()
        advanced = _activities(new_journey["id"], ActivityType.PHASE_ADVANCED)[0]
        assert advanced.actor_user_id == mentor.id
        assert advanced.payload["completed_by"] == mentor.id
        assert advanced.payload["notes"] == "signed off"
        assert advanced.payload["cause"] == auto_advance.CAUSE_MANUAL_COMPLETION

    def test_manual_completion_of_pending_phase_rejected(self, new_journey):
        second = _phases(new_journey["id"])[1]
        with pytest.raises(InvalidStateError):
            auto_advance.manually_complete_phase(second.id)
        assert _phases(new_journey["id"])[1].status == PhaseStatus.NOT_STARTED


# ═════════════════════════════════════════════════════════════════════════════
# Cycle renewal
# ═════════════════════════════════════════════════════════════════════════════


class TestCycleRenewal:
    def _finish(self, journey_id, phases=5):
        for _ in range(phases):
            assert auto_advance.auto_advance_phase(journey_id, auto_advance.CAUSE_MANUAL_ADVANCE)

    def test_completed_cycle_opens_next(self, existing_journey):
        self._finish(existing_journey["id"])

        old = db.session.get(Journey, existing_journey["id"])
        assert old.status == JourneyStatus.COMPLETED
        renewed = journey_store.find_active_journey(old.employee_id)
        assert renewed is not None
        assert renewed.id != old.id
        assert renewed.cycle_number == 2
        assert renewed.status == JourneyStatus.IN_PROGRESS
        assert renewed.employee_type == EmployeeType.EXISTING_EMPLOYEE
        assert [p.status for p in _phases(renewed.id)][:2] == [
            PhaseStatus.IN_PROGRESS, PhaseStatus.NOT_STARTED,
        ]
        started = _activities(renewed.id, ActivityType.JOURNEY_STARTED)
        assert started[0].title == "Cycle 2 Started"

    def test_renewal_can_be_disabled(self, app, existing_journey, monkeypatch):
        monkeypatch.setitem(app.config, "JOURNEY_RENEW_EXISTING_EMPLOYEE_CYCLE", False)
        self._finish(existing_journey["id"])
        employee_id = db.session.get(Journey, existing_journey["id"]).employee_id
        assert journey_store.find_active_journey(employee_id) is None

    def test_new_employee_journey_not_renewed(self, employee):
        from app.services import journey_service

        journey = journey_service.create_journey(
            employee.id, EmployeeType.NEW_EMPLOYEE,
            custom_phases=[{"title": "Only", "duration_days": 1}],
        )
        self._finish(journey["id"], phases=1)
        assert Journey.query.filter_by(employee_id=employee.id).count() == 1
