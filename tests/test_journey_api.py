"""
Journey blueprint tests (HTTP surface).

Service behaviour is covered by the service tests; these check routing,
input parsing, status codes and the error envelope.
"""

from unittest.mock import patch

import pytest

from app.models.journey import ActivityType, JourneyActivity
from app.services import journey_store

BASE = "/api/v1"


def _create(client, employee_id, **extra):
    body = {"employee_id": employee_id, "employee_type": "NEW_EMPLOYEE", **extra}
    return client.post(f"{BASE}/journeys", json=body)


@pytest.fixture()
def journey(client, employee):
    res = _create(client, employee.id, start_date="2025-01-06")
    assert res.status_code == 201
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# Journeys
# ═════════════════════════════════════════════════════════════════════════════


class TestJourneyEndpoints:
    def test_create(self, journey, employee):
        assert journey["employee_id"] == employee.id
        assert journey["started_at"] == "2025-01-06T00:00:00"
        assert len(journey["phases"]) == 7

    def test_create_with_custom_phases(self, client, employee):
        res = _create(client, employee.id, custom_phases=[{"title": "Only", "duration_days": 3}])
        assert res.status_code == 201
        assert [p["title"] for p in res.get_json()["phases"]] == ["Only"]

    def test_create_missing_fields(self, client):
        res = client.post(f"{BASE}/journeys", json={})
        assert res.status_code == 422
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_RULE"
        assert body["details"] == {"employee_id": "required"}

    def test_create_bool_employee_id(self, client):
        res = client.post(f"{BASE}/journeys", json={"employee_id": True, "employee_type": "NEW_EMPLOYEE"})
        assert res.status_code == 422

    def test_create_non_string_employee_type(self, client, employee):
        res = client.post(f"{BASE}/journeys", json={"employee_id": employee.id, "employee_type": 5})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"employee_type": "invalid"}

    def test_create_non_string_phase_title(self, client, employee):
        res = _create(client, employee.id, custom_phases=[{"title": 7, "duration_days": 3}])
        assert res.status_code == 422
        assert res.get_json()["details"] == {"custom_phases[0].title": "title must be a string"}

    def test_create_list_body(self, client):
        res = client.post(f"{BASE}/journeys", json=[{"employee_id": 1}])
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_RULE"

    def test_pause_non_string_reason(self, client, journey):
        res = client.post(f"{BASE}/journeys/{journey['id']}/pause", json={"reason": ["leave"]})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"reason": "invalid"}

    def test_create_bad_start_date(self, client, employee):
        res = _create(client, employee.id, start_date="next tuesday")
        assert res.status_code == 422
        assert res.get_json()["details"] == {"start_date": "invalid"}

    def test_create_duplicate(self, client, journey, employee):
        res = _create(client, employee.id)
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_create_unknown_employee(self, client):
        res = _create(client, 999)
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_custom_phases_forbidden_for_existing(self, client, employee):
        res = client.post(f"{BASE}/journeys", json={
            "employee_id": employee.id, "employee_type": "EXISTING_EMPLOYEE",
            "custom_phases": [{"title": "X", "duration_days": 1}],
        })
        assert res.status_code == 403

    def test_get(self, client, journey):
        res = client.get(f"{BASE}/journeys/{journey['id']}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["progress"]["total_count"] == 7
        assert body["employee"]["full_name"] == "Ada Employee"

    def test_get_unknown(self, client):
        assert client.get(f"{BASE}/journeys/404").status_code == 404

    def test_list(self, client, journey):
        res = client.get(f"{BASE}/journeys?employee_type=NEW_EMPLOYEE&search=Ada")
        assert res.status_code == 200
        assert res.get_json()["total"] == 1
        res = client.get(f"{BASE}/journeys?department=Finance")
        assert res.get_json()["total"] == 0

    def test_list_paging(self, client, journey, make_user):
        other = make_user(full_name="Bo Second")
        _create(client, other.id)
        body = client.get(f"{BASE}/journeys?limit=1&offset=1").get_json()
        assert body["total"] == 2
        assert len(body["items"]) == 1
        assert (body["limit"], body["offset"]) == (1, 1)

    def test_list_invalid_status(self, client):
        assert client.get(f"{BASE}/journeys?status=BOGUS").status_code == 422

    def test_stats(self, client, journey):
        body = client.get(f"{BASE}/journeys/stats").get_json()
        assert body["active_journeys"] == 1
        assert body["new_employee_journeys"] == 1

    def test_templates(self, client):
        res = client.get(f"{BASE}/journeys/templates/EXISTING_EMPLOYEE")
        assert res.status_code == 200
        assert len(res.get_json()["phases"]) == 5
        assert client.get(f"{BASE}/journeys/templates/INTERN").status_code == 422

    def test_progress(self, client, journey):
        body = client.get(f"{BASE}/journeys/{journey['id']}/progress").get_json()
        assert body["current_phase"] == 1

    def test_pause_resume(self, client, journey):
        res = client.post(f"{BASE}/journeys/{journey['id']}/pause", json={"reason": "Leave"})
        assert res.status_code == 200
        assert res.get_json()["status"] == "PAUSED"

        res = client.post(f"{BASE}/journeys/{journey['id']}/pause")
        assert res.status_code == 409
        assert res.get_json()["details"] == {"current_state": "PAUSED"}

        res = client.post(f"{BASE}/journeys/{journey['id']}/resume")
        assert res.status_code == 200
        assert res.get_json()["status"] == "IN_PROGRESS"

    def test_advance(self, client, journey):
        res = client.post(f"{BASE}/journeys/{journey['id']}/advance", json={"notes": "ok"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["advanced"] is True
        assert body["journey"]["progress"]["current_phase"] == 2

    def test_actor_header_recorded(self, client, journey, admin):
        client.post(
            f"{BASE}/journeys/{journey['id']}/pause", headers={"X-User-ID": str(admin.id)},
        )
        paused = JourneyActivity.query.filter_by(activity_type=ActivityType.JOURNEY_PAUSED).one()
        assert paused.actor_user_id == admin.id

    def test_bad_actor_header(self, client, journey):
        res = client.post(f"{BASE}/journeys/{journey['id']}/pause", headers={"X-User-ID": "root"})
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


class TestPhaseEndpoints:
    def test_insert_update_delete(self, client, journey):
        res = client.post(
            f"{BASE}/journeys/{journey['id']}/phases",
            json={"title": "Extra", "duration_days": 2, "insert_after_phase_number": 2},
        )
        assert res.status_code == 201
        phase = res.get_json()
        assert phase["phase_number"] == 3

        res = client.patch(f"{BASE}/phases/{phase['id']}", json={"title": "Extra v2"})
        assert res.status_code == 200
        assert res.get_json()["title"] == "Extra v2"

        res = client.delete(f"{BASE}/phases/{phase['id']}")
        assert res.status_code == 200
        numbers = [p.phase_number for p in journey_store.list_phases(journey["id"])]
        assert numbers == list(range(1, 8))

    def test_insert_bad_position(self, client, journey):
        res = client.post(
            f"{BASE}/journeys/{journey['id']}/phases",
            json={"title": "Extra", "duration_days": 2, "insert_after_phase_number": "x"},
        )
        assert res.status_code == 422

    def test_delete_started_phase(self, client, journey):
        res = client.delete(f"{BASE}/phases/{journey['phases'][0]['id']}")
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_STATE"

    def test_skip(self, client, journey):
        res = client.post(f"{BASE}/journeys/{journey['id']}/phases/1/skip", json={"reason": "n/a"})
        assert res.status_code == 200
        assert res.get_json()["phases"][1]["status"] == "IN_PROGRESS"

    def test_complete(self, client, journey, mentor):
        res = client.post(
            f"{BASE}/phases/{journey['phases'][0]['id']}/complete",
            json={"notes": "done"}, headers={"X-User-ID": str(mentor.id)},
        )
        assert res.status_code == 200
        assert res.get_json()["phases"][0]["status"] == "COMPLETED"

    def test_complete_pending_phase(self, client, journey):
        res = client.post(f"{BASE}/phases/{journey['phases'][3]['id']}/complete")
        assert res.status_code == 409

    def test_mentor_assign_and_remove(self, client, journey, mentor):
        phase_id = journey["phases"][0]["id"]
        with patch("app.services.mentor_service.NotificationService.notify"):
            res = client.put(f"{BASE}/phases/{phase_id}/mentor", json={"mentor_id": mentor.id})
        assert res.status_code == 200
        assert res.get_json()["capability_granted"] is True

        res = client.get(f"{BASE}/mentors/{mentor.id}/phases")
        assert res.get_json()["total"] == 1

        res = client.delete(f"{BASE}/phases/{phase_id}/mentor")
        assert res.status_code == 200
        assert res.get_json()["mentor_id"] is None

    def test_mentor_assign_requires_id(self, client, journey):
        res = client.put(f"{BASE}/phases/{journey['phases'][0]['id']}/mentor", json={})
        assert res.status_code == 422

    def test_link_assessment_and_training(self, client, journey):
        phase_id = journey["phases"][0]["id"]
        res = client.post(f"{BASE}/phases/{phase_id}/assessment", json={"assessment_id": "asm-1"})
        assert res.status_code == 200
        assert res.get_json()["linked_assessment_id"] == "asm-1"
        res = client.post(f"{BASE}/phases/{phase_id}/training", json={"training_assignment_id": "tr-1"})
        assert res.status_code == 200
        assert res.get_json()["linked_training_assignment_id"] == "tr-1"
        res = client.post(f"{BASE}/phases/{phase_id}/training", json={})
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════════
# People / misc
# ═════════════════════════════════════════════════════════════════════════════


class TestPeopleEndpoints:
    def test_employee_journey(self, client, journey, employee):
        body = client.get(f"{BASE}/employees/{employee.id}/journey").get_json()
        assert body["journey"]["id"] == journey["id"]

    def test_employee_without_journey(self, client, mentor):
        body = client.get(f"{BASE}/employees/{mentor.id}/journey").get_json()
        assert body == {"journey": None}


class TestRequestGuards:
    def test_non_json_body_rejected(self, client):
        res = client.post(f"{BASE}/journeys", data="employee_id=1", content_type="text/plain")
        assert res.status_code == 415

    def test_unknown_api_route(self, client):
        res = client.get(f"{BASE}/nothing-here")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"

    def test_health(self, client):
        assert client.get(f"{BASE}/health/ready").get_json() == {"status": "ok"}
        live = client.get(f"{BASE}/health/live")
        assert live.status_code == 200
        assert "journey_overdue_reminder" in live.get_json()["checks"]["jobs"]["registered"]
