"""
API endpoint tests – verifies all REST endpoints return correct structure.
Covers users, prescriptions, schedule generation, status tracking,
conflicts and the assembled day timeline.
"""

import pytest
from dosewise.models.models import AuditLog, MedicationSchedule, MedicationStatus


class TestHealthEndpoint:
    def test_health_check(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "ok"
        assert data["service"] == "dosewise"


# ════════════════════════════════════════════
# USERS & USER CONTEXT
# ════════════════════════════════════════════

class TestUserEndpoints:
    def test_create_user(self, client):
        resp = client.post("/api/users/", json={"username": "asha", "name": "Asha"})
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["user"]["username"] == "asha"
        assert data["user"]["id"]

    def test_create_user_missing_fields(self, client):
        resp = client.post("/api/users/", json={"username": "asha"})
        assert resp.status_code == 400

    def test_create_user_duplicate(self, client):
        client.post("/api/users/", json={"username": "dup", "name": "One"})
        resp = client.post("/api/users/", json={"username": "dup", "name": "Two"})
        assert resp.status_code == 409

    def test_me(self, client, user, user_headers):
        resp = client.get("/api/users/me", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == user.id

    def test_missing_user_header(self, client, user):
        resp = client.get("/api/prescriptions/")
        assert resp.status_code == 400
        assert "X-User-Id" in resp.get_json()["error"]

    def test_unknown_user(self, client):
        resp = client.get("/api/prescriptions/", headers={"X-User-Id": "nobody"})
        assert resp.status_code == 404


# ════════════════════════════════════════════
# PRESCRIPTIONS
# ════════════════════════════════════════════

AMOXICILLIN_RX = {
    "doctor_name": "Dr. Rao",
    "hospital_clinic": "City Clinic",
    "consultation_date": "2024-01-01",
    "diagnosis": "Sinusitis",
    "medicines": [
        {
            "name": "Amoxicillin",
            "dosage": "500 mg",
            "frequency": "twice daily",
            "duration": "3 days",
            "timing_instructions": "after meal",
        },
    ],
}


@pytest.fixture
def prescription(client, user_headers):
    resp = client.post("/api/prescriptions/", json=AMOXICILLIN_RX, headers=user_headers)
    assert resp.status_code == 201
    return resp.get_json()["prescription"]


@pytest.fixture
def generated(client, user_headers, prescription):
    resp = client.post("/api/timeline/generate-schedules", json={
        "prescription_id": prescription["id"],
        "start_date": "2024-01-01",
    }, headers=user_headers)
    assert resp.status_code == 200
    return resp.get_json()["schedules"]


class TestPrescriptionEndpoints:
    def test_create(self, prescription):
        assert prescription["doctor_name"] == "Dr. Rao"
        assert prescription["consultation_date"] == "2024-01-01"
        assert len(prescription["medicines"]) == 1
        medicine = prescription["medicines"][0]
        assert medicine["priority_level"] == "medium"
        assert medicine["administration_route"] == "oral"

    def test_placeholders_become_null(self, client, user_headers):
        resp = client.post("/api/prescriptions/", json={
            "doctor_name": "Not mentioned",
            "medicines": [{"name": "Cetirizine", "dosage": "Not specified", "frequency": "once daily"}],
        }, headers=user_headers)
        data = resp.get_json()["prescription"]
        assert data["doctor_name"] is None
        assert data["medicines"][0]["dosage"] is None

    def test_medicines_must_be_a_list(self, client, user_headers):
        resp = client.post("/api/prescriptions/", json={"medicines": "Amoxicillin"}, headers=user_headers)
        assert resp.status_code == 400

    def test_list_and_get(self, client, user_headers, prescription):
        resp = client.get("/api/prescriptions/", headers=user_headers)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.get_json()["prescriptions"]] == [prescription["id"]]

        resp = client.get(f"/api/prescriptions/{prescription['id']}", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["prescription"]["diagnosis"] == "Sinusitis"

    def test_other_user_cannot_read(self, client, prescription):
        other = client.post("/api/users/", json={"username": "other", "name": "Other"}).get_json()["user"]
        resp = client.get(f"/api/prescriptions/{prescription['id']}", headers={"X-User-Id": other["id"]})
        assert resp.status_code == 404

    def test_delete_cascades(self, client, user_headers, prescription, generated):
        resp = client.delete(f"/api/prescriptions/{prescription['id']}", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True
        assert MedicationSchedule.query.count() == 0

        resp = client.get(f"/api/prescriptions/{prescription['id']}", headers=user_headers)
        assert resp.status_code == 404

    def test_edit_medicine_regenerates(self, client, user_headers, prescription, generated):
        medicine_id = prescription["medicines"][0]["id"]
        resp = client.put(f"/api/prescriptions/medicines/{medicine_id}", json={
            "frequency": "three times daily",
        }, headers=user_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["regenerated"] is True
        assert data["medicine"]["frequency"] == "three times daily"
        assert len(data["schedules"]) == 9
        assert MedicationSchedule.query.count() == 9

    def test_edit_unscheduled_medicine(self, client, user_headers, prescription):
        medicine_id = prescription["medicines"][0]["id"]
        resp = client.put(f"/api/prescriptions/medicines/{medicine_id}", json={
            "dosage": "250 mg",
        }, headers=user_headers)
        data = resp.get_json()
        assert data["regenerated"] is False
        assert data["schedules"] == []
        assert data["medicine"]["dosage"] == "250 mg"


# ════════════════════════════════════════════
# SCHEDULES
# ════════════════════════════════════════════

class TestScheduleEndpoints:
    def test_generate(self, generated):
        assert len(generated) == 6
        assert [s["scheduled_time"] for s in generated[:2]] == [
            "2024-01-01T08:00:00", "2024-01-01T20:00:00"
        ]
        assert [s["meal_timing"] for s in generated[:2]] == ["breakfast", "dinner"]

    def test_generate_twice_replaces(self, client, user_headers, prescription, generated):
        client.post("/api/timeline/generate-schedules", json={
            "prescription_id": prescription["id"],
            "start_date": "2024-01-01",
        }, headers=user_headers)
        assert MedicationSchedule.query.count() == 6

    def test_generate_with_end_date(self, client, user_headers, prescription):
        resp = client.post("/api/timeline/generate-schedules", json={
            "prescription_id": prescription["id"],
            "start_date": "2024-01-01",
            "end_date": "2024-01-01",
        }, headers=user_headers)
        data = resp.get_json()
        assert len(data["schedules"]) == 2
        assert data["message"] == "Generated 2 medication schedules"

    def test_generate_defaults_to_consultation_date(self, client, user_headers, prescription):
        resp = client.post("/api/timeline/generate-schedules", json={
            "prescription_id": prescription["id"],
        }, headers=user_headers)
        assert resp.get_json()["schedules"][0]["start_date"] == "2024-01-01"

    def test_generate_requires_prescription(self, client, user_headers):
        resp = client.post("/api/timeline/generate-schedules", json={}, headers=user_headers)
        assert resp.status_code == 400

    def test_generate_unknown_prescription(self, client, user_headers):
        resp = client.post("/api/timeline/generate-schedules", json={
            "prescription_id": "missing",
        }, headers=user_headers)
        assert resp.status_code == 404

    def test_schedules_for_day(self, client, user_headers, generated):
        resp = client.get("/api/timeline/schedules?date=2024-01-02", headers=user_headers)
        assert resp.status_code == 200
        times = [s["scheduled_time"] for s in resp.get_json()["schedules"]]
        assert times == ["2024-01-02T08:00:00", "2024-01-02T20:00:00"]

    @pytest.mark.parametrize("query", ["", "?date=", "?date=yesterday"])
    def test_schedules_bad_date(self, client, user_headers, query):
        resp = client.get(f"/api/timeline/schedules{query}", headers=user_headers)
        assert resp.status_code == 400

    def test_meal_timing(self, client, user_headers, generated):
        resp = client.put(f"/api/timeline/schedule/{generated[0]['id']}/meal-timing", json={
            "meal_timing": "lunch",
        }, headers=user_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["schedule"]["meal_timing"] == "lunch"

    def test_meal_timing_invalid(self, client, user_headers, generated):
        resp = client.put(f"/api/timeline/schedule/{generated[0]['id']}/meal-timing", json={
            "meal_timing": "supper",
        }, headers=user_headers)
        assert resp.status_code == 400

    def test_meal_timing_unknown_schedule(self, client, user_headers):
        resp = client.put("/api/timeline/schedule/missing/meal-timing", json={
            "meal_timing": "lunch",
        }, headers=user_headers)
        assert resp.status_code == 404


# ════════════════════════════════════════════
# STATUS TRACKING
# ════════════════════════════════════════════

class TestStatusEndpoints:
    def test_mark_taken(self, client, user_headers, generated):
        resp = client.put(f"/api/timeline/status/{generated[0]['id']}", json={
            "status": "taken",
            "notes": "with toast",
            "actual_time": "2024-01-01T08:10:00",
        }, headers=user_headers)
        assert resp.status_code == 200
        status = resp.get_json()["status"]
        assert status["status"] == "taken"
        assert status["actual_time"] == "2024-01-01T08:10:00"

    def test_remark_overwrites(self, client, user_headers, generated):
        url = f"/api/timeline/status/{generated[0]['id']}"
        client.put(url, json={"status": "taken"}, headers=user_headers)
        client.put(url, json={"status": "skipped"}, headers=user_headers)
        assert MedicationStatus.query.count() == 1
        assert MedicationStatus.query.first().status == "skipped"

    def test_invalid_status(self, client, user_headers, generated):
        resp = client.put(f"/api/timeline/status/{generated[0]['id']}", json={
            "status": "upcoming",
        }, headers=user_headers)
        assert resp.status_code == 400

    def test_unknown_schedule(self, client, user_headers):
        resp = client.put("/api/timeline/status/missing", json={"status": "taken"}, headers=user_headers)
        assert resp.status_code == 404

    def test_statuses_for_day(self, client, user_headers, generated):
        client.put(f"/api/timeline/status/{generated[0]['id']}", json={"status": "taken"}, headers=user_headers)
        client.put(f"/api/timeline/status/{generated[2]['id']}", json={"status": "missed"}, headers=user_headers)

        resp = client.get("/api/timeline/status?date=2024-01-01", headers=user_headers)
        assert resp.status_code == 200
        assert [s["status"] for s in resp.get_json()["statuses"]] == ["taken"]

    def test_next_dose(self, client, user_headers, prescription, generated):
        client.put(f"/api/timeline/status/{generated[0]['id']}", json={
            "status": "taken",
            "actual_time": "2024-01-01T08:00:00",
        }, headers=user_headers)
        medicine_id = prescription["medicines"][0]["id"]

        resp = client.get(f"/api/timeline/medicines/{medicine_id}/next-dose", headers=user_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["last_taken"] == "2024-01-01T08:00:00"
        assert data["next_dose"] == "2024-01-01T20:00:00"

    def test_next_dose_unknown_medicine(self, client, user_headers):
        resp = client.get("/api/timeline/medicines/missing/next-dose", headers=user_headers)
        assert resp.status_code == 404


# ════════════════════════════════════════════
# CONFLICTS & DAY TIMELINE
# ════════════════════════════════════════════

WARFARIN_RX = {
    "consultation_date": "2024-01-01",
    "medicines": [
        {"name": "Warfarin", "frequency": "once daily", "duration": "2 days", "priority_level": "critical"},
        {"name": "Aspirin", "frequency": "once daily", "duration": "2 days"},
    ],
}


@pytest.fixture
def warfarin_day(client, user_headers):
    rx = client.post("/api/prescriptions/", json=WARFARIN_RX, headers=user_headers).get_json()["prescription"]
    client.post("/api/timeline/generate-schedules", json={
        "prescription_id": rx["id"], "start_date": "2024-01-01",
    }, headers=user_headers)
    return rx


class TestConflictEndpoints:
    def test_no_conflicts(self, client, user_headers, generated):
        resp = client.get("/api/timeline/conflicts", headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["conflicts"] == []

    def test_interaction_and_timing(self, client, user_headers, warfarin_day):
        resp = client.get("/api/timeline/conflicts", headers=user_headers)
        conflicts = resp.get_json()["conflicts"]
        assert sorted((c["conflict_type"], c["severity"]) for c in conflicts) == [
            ("interaction", "severe"),
            ("timing", "severe"),
        ]

    def test_interaction_without_schedules(self, client, user_headers):
        client.post("/api/prescriptions/", json=WARFARIN_RX, headers=user_headers)
        conflicts = client.get("/api/timeline/conflicts", headers=user_headers).get_json()["conflicts"]
        assert [c["conflict_type"] for c in conflicts] == ["interaction"]

    def test_conflict_ids_stable(self, client, user_headers, warfarin_day):
        first = client.get("/api/timeline/conflicts", headers=user_headers).get_json()["conflicts"]
        second = client.get("/api/timeline/conflicts", headers=user_headers).get_json()["conflicts"]
        assert [c["id"] for c in first] == [c["id"] for c in second]


class TestDayEndpoint:
    def test_day_view(self, client, user_headers, generated):
        client.put(f"/api/timeline/status/{generated[0]['id']}", json={"status": "taken"}, headers=user_headers)

        resp = client.get("/api/timeline/day?date=2024-01-01", headers=user_headers)
        assert resp.status_code == 200
        data = resp.get_json()
        timeline = data["timeline"]
        assert [s["key"] for s in timeline["slots"]] == ["08:00", "20:00"]
        assert timeline["slots"][0]["medications"][0]["status"]["status"] == "taken"
        assert timeline["slots"][1]["medications"][0]["status"]["status"] == "upcoming"
        assert data["statistics"] == {
            "total": 2, "completed": 1, "missed": 0, "upcoming": 1, "adherence_rate": 50,
        }

    def test_empty_day(self, client, user_headers, generated):
        resp = client.get("/api/timeline/day?date=2030-01-01", headers=user_headers)
        timeline = resp.get_json()["timeline"]
        assert timeline["slots"] == []
        assert timeline["total_medications"] == 0
        assert timeline["completed_medications"] == 0
        assert timeline["missed_medications"] == 0

    def test_day_conflicts_attached(self, client, user_headers, warfarin_day):
        data = client.get("/api/timeline/day?date=2024-01-01", headers=user_headers).get_json()
        morning = data["timeline"]["slots"][0]
        assert len(morning["medications"]) == 2
        assert len(morning["conflicts"]) == 2

    def test_day_hide_conflicts(self, client, user_headers, warfarin_day):
        data = client.get(
            "/api/timeline/day?date=2024-01-01&show_conflicts=false", headers=user_headers
        ).get_json()
        assert data["timeline"]["slots"][0]["conflicts"] == []

    def test_day_priority_filter(self, client, user_headers, warfarin_day):
        data = client.get(
            "/api/timeline/day?date=2024-01-01&priority_levels=critical", headers=user_headers
        ).get_json()
        names = [m["medicine"]["name"] for s in data["timeline"]["slots"] for m in s["medications"]]
        assert names == ["Warfarin"]

    def test_day_prescription_filter(self, client, user_headers, generated, warfarin_day):
        data = client.get(
            f"/api/timeline/day?date=2024-01-01&prescription_ids={warfarin_day['id']}",
            headers=user_headers,
        ).get_json()
        names = {m["medicine"]["name"] for s in data["timeline"]["slots"] for m in s["medications"]}
        assert names == {"Warfarin", "Aspirin"}

    def test_day_requires_date(self, client, user_headers):
        resp = client.get("/api/timeline/day", headers=user_headers)
        assert resp.status_code == 400


# ════════════════════════════════════════════
# AUDIT TRAIL
# ════════════════════════════════════════════

class TestAuditTrail:
    def test_mutations_logged(self, client, user, user_headers, prescription):
        entries = AuditLog.query.filter_by(endpoint="/api/prescriptions/").all()
        assert len(entries) == 1
        assert entries[0].method == "POST"
        assert entries[0].status_code == 201
        assert entries[0].user_id == user.id

    def test_reads_not_logged(self, client, user_headers):
        client.get("/api/users/me", headers=user_headers)
        assert AuditLog.query.filter_by(endpoint="/api/users/me").count() == 0
