"""
Pause / resume controller tests.

After an N-day pause every unfinished phase's due date moves forward by N
days; completed phases are left untouched.
"""

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError
from app.models.journey import ActivityType, JourneyActivity, JourneyStatus, PhaseStatus
from app.services import auto_advance, journey_service, journey_store

T0 = datetime(2025, 1, 6, 9, 0, 0)


def _dues(journey_id):
    return [p.due_date for p in journey_store.list_phases(journey_id)]


class TestPause:
    def test_pause(self, new_journey, admin):
        t = T0 + timedelta(days=1)
        result = journey_service.pause_journey(
            new_journey["id"], reason=" Medical leave ", actor_id=admin.id, now=t,
        )
        assert result["status"] == JourneyStatus.PAUSED
        assert result["paused_at"] == t.isoformat()
        assert result["pause_reason"] == "Medical leave"
        paused = JourneyActivity.query.filter_by(
            journey_id=new_journey["id"], activity_type=ActivityType.JOURNEY_PAUSED,
        ).one()
        assert paused.actor_user_id == admin.id
        assert paused.payload == {"reason": "Medical leave"}

    def test_pause_does_not_touch_phases(self, new_journey):
        before = _dues(new_journey["id"])
        journey_service.pause_journey(new_journey["id"], now=T0 + timedelta(days=1))
        assert _dues(new_journey["id"]) == before

    def test_paused_phase_not_reported_overdue(self, new_journey):
        jid = new_journey["id"]
        journey_service.pause_journey(jid, now=T0 + timedelta(days=1))
        late = T0 + timedelta(days=5)

        journey = journey_service.get_journey(jid, now=late)

        assert journey["phases"][0]["status"] == PhaseStatus.IN_PROGRESS
        assert journey_store.list_phases(jid)[0].is_overdue(late) is False
        assert journey_service.get_journey_statistics(now=late)["overdue_phases"] == 0

    def test_pause_twice_rejected(self, new_journey):
        journey_service.pause_journey(new_journey["id"])
        with pytest.raises(InvalidStateError) as exc:
            journey_service.pause_journey(new_journey["id"])
        assert exc.value.current_state == JourneyStatus.PAUSED

    def test_pause_completed_rejected(self, employee):
        from app.models.journey import EmployeeType

        journey = journey_service.create_journey(
            employee.id, EmployeeType.NEW_EMPLOYEE,
            custom_phases=[{"title": "Only", "duration_days": 1}],
        )
        auto_advance.auto_advance_phase(journey["id"], auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            journey_service.pause_journey(journey["id"])

    def test_pause_unknown(self):
        with pytest.raises(NotFoundError):
            journey_service.pause_journey(404)


class TestResume:
    def test_resume_shifts_all_unfinished_phases(self, new_journey):
        jid = new_journey["id"]
        before = _dues(jid)
        journey_service.pause_journey(jid, now=T0 + timedelta(days=1))

        result = journey_service.resume_journey(jid, now=T0 + timedelta(days=6))

        assert result["status"] == JourneyStatus.IN_PROGRESS
        assert result["paused_at"] is None
        assert result["pause_reason"] is None
        assert _dues(jid) == [d + timedelta(days=5) for d in before]

    def test_completed_phases_untouched(self, new_journey):
        jid = new_journey["id"]
        t1 = T0 + timedelta(days=1)
        auto_advance.auto_advance_phase(jid, auto_advance.CAUSE_MANUAL_ADVANCE, now=t1)
        first_before = journey_store.list_phases(jid)[0]
        completed_at, due = first_before.completed_at, first_before.due_date
        rest_before = _dues(jid)[1:]

        journey_service.pause_journey(jid, now=T0 + timedelta(days=2))
        journey_service.resume_journey(jid, now=T0 + timedelta(days=5))

        first = journey_store.list_phases(jid)[0]
        assert first.status == PhaseStatus.COMPLETED
        assert first.completed_at == completed_at
        assert first.due_date == due
        assert _dues(jid)[1:] == [d + timedelta(days=3) for d in rest_before]

    def test_phase_started_during_pause_shifts_from_its_start(self, new_journey):
        jid = new_journey["id"]
        journey_service.pause_journey(jid, now=T0 + timedelta(days=1))
        auto_advance.auto_advance_phase(jid, auto_advance.CAUSE_MANUAL_ADVANCE, now=T0 + timedelta(days=3))
        second_due = journey_store.list_phases(jid)[1].due_date

        journey_service.resume_journey(jid, now=T0 + timedelta(days=4))

        assert journey_store.list_phases(jid)[1].due_date == second_due + timedelta(days=1)

    def test_phase_started_during_pause_is_not_shifted_by_full_pause(self, new_journey):
        jid = new_journey["id"]
        resume_at = T0 + timedelta(days=4)
        journey_service.pause_journey(jid, now=T0 + timedelta(days=1))
        auto_advance.auto_advance_phase(jid, auto_advance.CAUSE_MANUAL_ADVANCE, now=T0 + timedelta(days=3))
        second_due = journey_store.list_phases(jid)[1].due_date

        journey_service.resume_journey(jid, now=resume_at)

        second = journey_store.list_phases(jid)[1]
        assert second.due_date != second_due + timedelta(days=3)
        assert second.due_date == resume_at + timedelta(days=second.duration_days)

    def test_resume_restores_overdue_status(self, new_journey):
        jid = new_journey["id"]
        journey_service.pause_journey(jid, now=T0 + timedelta(days=1))
        resumed = journey_service.resume_journey(jid, now=T0 + timedelta(days=11))
        # Phase 1 was due T0+2d; shifted to T0+12d it is no longer overdue at T0+11d.
        assert resumed["phases"][0]["status"] == PhaseStatus.IN_PROGRESS

    def test_resume_activity(self, new_journey):
        jid = new_journey["id"]
        journey_service.pause_journey(jid, now=T0)
        journey_service.resume_journey(jid, now=T0 + timedelta(days=3))
        resumed = JourneyActivity.query.filter_by(
            journey_id=jid, activity_type=ActivityType.JOURNEY_RESUMED,
        ).one()
        assert resumed.payload == {"paused_days": 3, "phases_shifted": 7}

    def test_resume_not_paused_rejected(self, new_journey):
        with pytest.raises(InvalidStateError) as exc:
            journey_service.resume_journey(new_journey["id"])
        assert exc.value.current_state == JourneyStatus.IN_PROGRESS

    def test_pause_does_not_affect_other_journeys(self, new_journey, existing_journey):
        before = _dues(existing_journey["id"])
        journey_service.pause_journey(new_journey["id"], now=T0)
        journey_service.resume_journey(new_journey["id"], now=T0 + timedelta(days=2))
        assert _dues(existing_journey["id"]) == before
