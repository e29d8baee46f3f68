"""
Renumbering engine tests.

Invariant checked after every mutation: phase numbers of a journey are
exactly 1..N with no gaps or duplicates.

Covers:
    1. insert_phase (front/middle/append, bounds, started tail, type guard)
    2. delete_phase (gap closing, started phase guard, type guard)
    3. update_phase_details (fields, due-date recalculation, guards)
"""

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.journey import (
    ActivityType,
    EmployeeType,
    JourneyActivity,
    JourneyPhase,
    PhaseStatus,
)
from app.services import auto_advance, journey_service, journey_store, phase_renumbering

T0 = datetime(2025, 1, 6, 9, 0, 0)

EXTRA = {"title": "Security Training", "duration_days": 4, "description": "Mandatory"}


def _numbers(journey_id):
    return [p.phase_number for p in journey_store.list_phases(journey_id)]


def _titles(journey_id):
    return [p.title for p in journey_store.list_phases(journey_id)]


def _assert_contiguous(journey_id):
    numbers = _numbers(journey_id)
    assert numbers == list(range(1, len(numbers) + 1))


# ═════════════════════════════════════════════════════════════════════════════
# Insert
# ═════════════════════════════════════════════════════════════════════════════


class TestInsertPhase:
    def test_insert_in_middle(self, new_journey):
        jid = new_journey["id"]
        old_titles = _titles(jid)

        phase = phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=1, now=T0)

        assert phase["phase_number"] == 2
        assert phase["status"] == PhaseStatus.NOT_STARTED
        assert phase["phase_type"] == "CUSTOM"
        _assert_contiguous(jid)
        assert _titles(jid) == [old_titles[0], "Security Training", *old_titles[1:]]

    def test_inserted_due_date_follows_predecessor(self, new_journey):
        jid = new_journey["id"]
        first_due = journey_store.list_phases(jid)[0].due_date
        phase = phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=1, now=T0)
        assert phase["due_date"] == (first_due + timedelta(days=4)).isoformat()

    def test_append_by_default(self, new_journey):
        jid = new_journey["id"]
        phase = phase_renumbering.insert_phase(jid, EXTRA)
        assert phase["phase_number"] == 8
        _assert_contiguous(jid)

    def test_appended_phase_due_from_now(self, new_journey):
        now = T0 + timedelta(days=1)
        phase = phase_renumbering.insert_phase(new_journey["id"], {"title": "Wrap-up", "duration_days": 2}, now=now)
        assert phase["due_date"] == "2025-01-09T09:00:00"

    def test_explicit_last_position_chains_from_last_phase(self, new_journey):
        jid = new_journey["id"]
        last_due = journey_store.list_phases(jid)[-1].due_date
        phase = phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=7, now=T0)
        assert phase["due_date"] == (last_due + timedelta(days=4)).isoformat()

    def test_insert_at_front_of_started_journey_rejected(self, new_journey):
        with pytest.raises(InvalidStateError):
            phase_renumbering.insert_phase(new_journey["id"], EXTRA, insert_after_phase_number=0)
        assert len(_numbers(new_journey["id"])) == 7

    def test_insert_before_completed_phase_rejected(self, new_journey):
        jid = new_journey["id"]
        auto_advance.auto_advance_phase(jid, auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=1)
        phase = phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=2)
        assert phase["phase_number"] == 3

    @pytest.mark.parametrize("after", [-1, 8, 100])
    def test_out_of_range_rejected(self, new_journey, after):
        with pytest.raises(ValidationError):
            phase_renumbering.insert_phase(new_journey["id"], EXTRA, insert_after_phase_number=after)
        _assert_contiguous(new_journey["id"])

    def test_invalid_config_rejected(self, new_journey):
        with pytest.raises(ValidationError):
            phase_renumbering.insert_phase(new_journey["id"], {"title": "No duration"})

    def test_non_string_title_rejected(self, new_journey):
        with pytest.raises(ValidationError) as exc:
            phase_renumbering.insert_phase(new_journey["id"], {"title": 42, "duration_days": 2})
        assert exc.value.details == {"title": "title must be a string"}
        assert len(_numbers(new_journey["id"])) == 7

    def test_unknown_mentor_rejected(self, new_journey):
        with pytest.raises(NotFoundError):
            phase_renumbering.insert_phase(new_journey["id"], {**EXTRA, "mentor_id": 999})
        assert len(_numbers(new_journey["id"])) == 7

    def test_existing_employee_forbidden(self, existing_journey):
        with pytest.raises(ForbiddenError):
            phase_renumbering.insert_phase(existing_journey["id"], EXTRA)

    def test_completed_journey_rejected(self, employee):
        journey = journey_service.create_journey(
            employee.id, EmployeeType.NEW_EMPLOYEE,
            custom_phases=[{"title": "Only", "duration_days": 1}],
        )
        auto_advance.auto_advance_phase(journey["id"], auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            phase_renumbering.insert_phase(journey["id"], EXTRA)

    def test_unknown_journey(self):
        with pytest.raises(NotFoundError):
            phase_renumbering.insert_phase(404, EXTRA)

    def test_activity_recorded(self, new_journey, admin):
        phase_renumbering.insert_phase(new_journey["id"], EXTRA, 3, actor_id=admin.id)
        added = JourneyActivity.query.filter_by(
            journey_id=new_journey["id"], activity_type=ActivityType.PHASE_ADDED,
        ).one()
        assert added.phase_number == 4
        assert added.actor_user_id == admin.id
        assert added.payload["shifted"] == 4

    def test_repeated_inserts_stay_contiguous(self, new_journey):
        jid = new_journey["id"]
        for after in (1, 3, 2, 9, 5):
            phase_renumbering.insert_phase(jid, {**EXTRA, "title": f"Extra {after}"}, after)
            _assert_contiguous(jid)
        assert len(_numbers(jid)) == 12


# ═════════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDeletePhase:
    def test_delete_closes_gap(self, new_journey):
        jid = new_journey["id"]
        titles = _titles(jid)
        third = journey_store.list_phases(jid)[2]

        result = phase_renumbering.delete_phase(third.id)

        assert result == {"deleted_phase_id": third.id, "journey_id": jid, "phase_number": 3}
        _assert_contiguous(jid)
        assert _titles(jid) == titles[:2] + titles[3:]
        assert JourneyPhase.query.filter_by(id=third.id).first() is None

    def test_delete_last_phase(self, new_journey):
        jid = new_journey["id"]
        last = journey_store.list_phases(jid)[-1]
        phase_renumbering.delete_phase(last.id)
        assert _numbers(jid) == list(range(1, 7))

    def test_delete_started_phase_rejected(self, new_journey):
        first = journey_store.list_phases(new_journey["id"])[0]
        with pytest.raises(InvalidStateError):
            phase_renumbering.delete_phase(first.id)
        assert len(_numbers(new_journey["id"])) == 7

    def test_delete_completed_phase_rejected(self, new_journey):
        first = journey_store.list_phases(new_journey["id"])[0]
        auto_advance.auto_advance_phase(new_journey["id"], auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            phase_renumbering.delete_phase(first.id)

    def test_existing_employee_forbidden(self, existing_journey):
        last = journey_store.list_phases(existing_journey["id"])[-1]
        with pytest.raises(ForbiddenError):
            phase_renumbering.delete_phase(last.id)

    def test_unknown_phase(self):
        with pytest.raises(NotFoundError):
            phase_renumbering.delete_phase(999)

    def test_insert_then_delete_restores_order(self, new_journey):
        jid = new_journey["id"]
        titles = _titles(jid)
        phase = phase_renumbering.insert_phase(jid, EXTRA, insert_after_phase_number=4)
        phase_renumbering.delete_phase(phase["id"])
        assert _titles(jid) == titles
        _assert_contiguous(jid)

    def test_activity_recorded(self, new_journey):
        fifth = journey_store.list_phases(new_journey["id"])[4]
        phase_renumbering.delete_phase(fifth.id)
        deleted = JourneyActivity.query.filter_by(
            journey_id=new_journey["id"], activity_type=ActivityType.PHASE_DELETED,
        ).one()
        assert deleted.phase_number == 5
        assert deleted.payload["title"] == fifth.title
        assert deleted.payload["shifted"] == 2


# ═════════════════════════════════════════════════════════════════════════════
# Update
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdatePhaseDetails:
    def test_update_title_and_description(self, new_journey):
        second = journey_store.list_phases(new_journey["id"])[1]
        result = phase_renumbering.update_phase_details(
            second.id, {"title": " Orientation ", "description": "Week one"},
        )
        assert result["title"] == "Orientation"
        assert result["description"] == "Week one"
        assert result["phase_number"] == 2

    def test_duration_change_on_started_phase(self, new_journey):
        first = journey_store.list_phases(new_journey["id"])[0]
        result = phase_renumbering.update_phase_details(first.id, {"duration_days": 5})
        assert result["due_date"] == (T0 + timedelta(days=5)).isoformat()

    def test_duration_change_on_pending_phase_shifts_due(self, new_journey):
        second = journey_store.list_phases(new_journey["id"])[1]
        old_due = second.due_date
        result = phase_renumbering.update_phase_details(second.id, {"duration_days": 10})
        assert result["due_date"] == (old_due - timedelta(days=5)).isoformat()

    def test_duration_change_on_completed_phase_rejected(self, new_journey):
        first = journey_store.list_phases(new_journey["id"])[0]
        auto_advance.auto_advance_phase(new_journey["id"], auto_advance.CAUSE_MANUAL_ADVANCE)
        with pytest.raises(InvalidStateError):
            phase_renumbering.update_phase_details(first.id, {"duration_days": 9})
        # Text edits on a completed phase are still allowed.
        result = phase_renumbering.update_phase_details(first.id, {"title": "Renamed"})
        assert result["title"] == "Renamed"

    def test_allowed_on_existing_employee_journey(self, existing_journey):
        first = journey_store.list_phases(existing_journey["id"])[0]
        result = phase_renumbering.update_phase_details(first.id, {"description": "Updated"})
        assert result["description"] == "Updated"

    @pytest.mark.parametrize("data", [
        {}, {"status": "COMPLETED"}, {"title": ""}, {"duration_days": 0},
        {"title": 123}, {"description": ["x"]}, ["title"],
    ])
    def test_invalid_updates_rejected(self, new_journey, data):
        second = journey_store.list_phases(new_journey["id"])[1]
        with pytest.raises(ValidationError):
            phase_renumbering.update_phase_details(second.id, data)

    def test_activity_records_before_and_after(self, new_journey):
        second = journey_store.list_phases(new_journey["id"])[1]
        phase_renumbering.update_phase_details(second.id, {"duration_days": 20})
        updated = JourneyActivity.query.filter_by(
            journey_id=new_journey["id"], activity_type=ActivityType.PHASE_UPDATED,
        ).one()
        assert updated.payload == {"before": {"duration_days": 15}, "after": {"duration_days": 20}}

    def test_unknown_phase(self):
        with pytest.raises(NotFoundError):
            phase_renumbering.update_phase_details(999, {"title": "x"})
