from datetime import timedelta

import pytest

from appointments import build_appointment, validate_appointment
from conftest import in_days
from database import create_document, utcnow
from schemas import AppointmentIn


@pytest.fixture
def resident(make_resident):
    return make_resident(name="Margaret Smith")


def doctor_body(resident_id, **overrides):
    body = {
        "resident_id": str(resident_id),
        "type": "doctor",
        "date": in_days(3),
        "purpose": "Cardiology follow-up",
        "doctor_name": "Dr. Patel",
        "hospital_name": "St. Mary's",
    }
    body.update(overrides)
    return body


def family_body(resident_id, **overrides):
    body = {
        "resident_id": str(resident_id),
        "type": "family",
        "date": in_days(2),
        "purpose": "Sunday visit",
        "relative_name": "John",
        "relation": "son",
        "relative_number": "5550001111",
    }
    body.update(overrides)
    return body


class TestValidation:
    def test_doctor_requires_doctor_and_hospital(self, client, auth_headers, resident):
        res = client.post("/appointments", json=doctor_body(resident["_id"], hospital_name=None),
                          headers=auth_headers)
        assert res.status_code == 400
        assert "hospital_name" in res.json()["message"]

        res = client.post("/appointments", json=doctor_body(resident["_id"], doctor_name=""),
                          headers=auth_headers)
        assert res.status_code == 400
        assert "doctor_name" in res.json()["message"]

    def test_family_requires_relation(self, client, auth_headers, resident, db):
        body = family_body(resident["_id"])
        del body["relation"]
        res = client.post("/appointments", json=body, headers=auth_headers)
        assert res.status_code == 400
        assert "relation" in res.json()["message"]
        assert db["appointment"].count_documents({}) == 0

    def test_date_must_be_in_future(self, client, auth_headers, resident):
        res = client.post("/appointments", json=doctor_body(resident["_id"], date=in_days(-1)),
                          headers=auth_headers)
        assert res.status_code == 400
        assert any("future" in e for e in res.json()["errors"])

    def test_unknown_resident(self, client, auth_headers):
        res = client.post("/appointments", json=doctor_body("64b7f0f0f0f0f0f0f0f0f0f0"), headers=auth_headers)
        assert res.status_code == 400
        assert any(e.startswith("resident_id") for e in res.json()["errors"])

    def test_invalid_type(self, client, auth_headers, resident):
        res = client.post("/appointments", json=doctor_body(resident["_id"], type="dentist"), headers=auth_headers)
        assert res.status_code == 400

    def test_invalid_relative_number(self, client, auth_headers, resident):
        res = client.post("/appointments", json=family_body(resident["_id"], relative_number="12-34"),
                          headers=auth_headers)
        assert res.status_code == 400
        assert "relative_number" in res.json()["message"]

    def test_purpose_length_limit(self, client, auth_headers, resident):
        res = client.post("/appointments", json=doctor_body(resident["_id"], purpose="x" * 501),
                          headers=auth_headers)
        assert res.status_code == 400

    def test_unknown_creator(self, db, resident):
        payload = AppointmentIn(**doctor_body(resident["_id"]))
        errors = validate_appointment(db, payload, utcnow(), created_by="64b7f0f0f0f0f0f0f0f0f0f0")
        assert errors == ["created_by: user not found or invalid id"]

    def test_build_drops_fields_of_other_type(self, resident):
        payload = AppointmentIn(**doctor_body(resident["_id"], relative_name="Stray"))
        appt = build_appointment(payload, "creator")
        assert appt.relative_name is None
        assert appt.doctor_name == "Dr. Patel"
        assert appt.completed is False


def test_create_returns_joined_record(client, auth_headers, resident):
    res = client.post("/appointments", json=doctor_body(resident["_id"]), headers=auth_headers)
    assert res.status_code == 201
    body = res.json()
    assert body["resident"]["name"] == "Margaret Smith"
    assert body["resident"]["room"] == "12B"
    assert body["creator"]["username"] == "nurse"
    assert body["completed"] is False
    assert body["relative_name"] is None

    log = client.get("/user-activity", headers=auth_headers).json()[0]["activity"]
    assert log[-1]["action"] == "Added an appointment"


def test_list_is_sorted_by_date_and_filtered_by_type(client, auth_headers, resident):
    client.post("/appointments", json=doctor_body(resident["_id"], date=in_days(5)), headers=auth_headers)
    client.post("/appointments", json=family_body(resident["_id"], date=in_days(1)), headers=auth_headers)
    client.post("/appointments", json=doctor_body(resident["_id"], date=in_days(2)), headers=auth_headers)

    all_appts = client.get("/appointments", headers=auth_headers).json()
    dates = [a["date"] for a in all_appts]
    assert dates == sorted(dates)
    assert [a["type"] for a in all_appts] == ["family", "doctor", "doctor"]

    doctors = client.get("/appointments/doctor", headers=auth_headers).json()
    assert {a["type"] for a in doctors} == {"doctor"}
    assert len(doctors) == 2
    family = client.get("/appointments/family", headers=auth_headers).json()
    assert len(family) == 1


def test_upcoming_tomorrow(client, auth_headers, resident):
    client.post("/appointments", json=doctor_body(resident["_id"], date=in_days(1)), headers=auth_headers)
    client.post("/appointments", json=doctor_body(resident["_id"], date=in_days(20)), headers=auth_headers)

    res = client.get("/appointments/upcoming", headers=auth_headers)
    assert res.status_code == 200
    upcoming = res.json()
    assert len(upcoming) == 1
    appt = upcoming[0]
    assert appt["days_left"] == 1
    assert appt["is_tomorrow"] is True
    assert appt["notification_message"] == "1 day left for Margaret Smith's doctor appointment at St. Mary's"


def test_upcoming_excludes_completed(client, auth_headers, resident, db):
    created = client.post("/appointments", json=doctor_body(resident["_id"]), headers=auth_headers).json()
    db["appointment"].update_one({}, {"$set": {"completed": True}})
    assert client.get("/appointments/upcoming", headers=auth_headers).json() == []


def test_upcoming_window_is_bounded(client, auth_headers):
    assert client.get("/appointments/upcoming?days=-1", headers=auth_headers).status_code == 400
    assert client.get("/appointments/upcoming?days=1000000000", headers=auth_headers).status_code == 400
    assert client.get("/appointments/upcoming?days=3650", headers=auth_headers).status_code == 200
    assert created["id"]


def test_search_matches_fields_and_resident_name(client, auth_headers, make_resident):
    smith = make_resident(name="Margaret Smith")
    jones = make_resident(name="Arthur Jones")
    client.post("/appointments", json=doctor_body(jones["_id"], doctor_name="Dr. SMITHERS"), headers=auth_headers)
    client.post("/appointments", json=family_body(smith["_id"], relative_name="Ann"), headers=auth_headers)
    client.post("/appointments", json=doctor_body(jones["_id"], doctor_name="Dr. Who"), headers=auth_headers)

    res = client.get("/appointments/search/smith", headers=auth_headers)
    assert res.status_code == 200
    found = res.json()
    assert len(found) == 2
    assert {a["resident"]["name"] for a in found} == {"Arthur Jones", "Margaret Smith"}


def test_search_treats_query_literally(client, auth_headers, resident):
    client.post("/appointments", json=doctor_body(resident["_id"], purpose="Checkup"), headers=auth_headers)
    assert client.get("/appointments/search/.*", headers=auth_headers).json() == []


def test_update_appointment(client, auth_headers, resident):
    created = client.post("/appointments", json=doctor_body(resident["_id"]), headers=auth_headers).json()
    res = client.put(
        f"/appointments/{created['id']}",
        json=family_body(resident["_id"], relative_name="Clara", relation="daughter"),
        headers=auth_headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["type"] == "family"
    assert body["relative_name"] == "Clara"
    assert body["doctor_name"] is None
    assert body["creator"]["username"] == "nurse"


def test_update_checks_type_fields(client, auth_headers, resident):
    created = client.post("/appointments", json=doctor_body(resident["_id"]), headers=auth_headers).json()
    body = family_body(resident["_id"])
    del body["relative_name"]
    res = client.put(f"/appointments/{created['id']}", json=body, headers=auth_headers)
    assert res.status_code == 400
    assert "relative_name" in res.json()["message"]


def test_update_missing_appointment(client, auth_headers, resident):
    res = client.put("/appointments/64b7f0f0f0f0f0f0f0f0f0f0", json=doctor_body(resident["_id"]),
                     headers=auth_headers)
    assert res.status_code == 404


def test_complete_and_delete(client, auth_headers, resident):
    created = client.post("/appointments", json=doctor_body(resident["_id"]), headers=auth_headers).json()

    res = client.patch(f"/appointments/{created['id']}/complete", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["completed"] is True

    res = client.delete(f"/appointments/{created['id']}", headers=auth_headers)
    assert res.status_code == 200
    assert res.json() == {"message": "Appointment deleted"}

    assert client.delete(f"/appointments/{created['id']}", headers=auth_headers).status_code == 404
    assert client.patch(f"/appointments/{created['id']}/complete", headers=auth_headers).status_code == 404


def test_join_tolerates_deleted_resident(client, auth_headers, db, resident):
    user_id = str(db["user"].find_one({})["_id"])
    create_document(db, "appointment", {
        "resident_id": "64b7f0f0f0f0f0f0f0f0f0f0",
        "type": "doctor",
        "date": utcnow() + timedelta(days=1),
        "purpose": "Orphan",
        "completed": False,
        "created_by": user_id,
        "hospital_name": "General",
    })
    res = client.get("/appointments", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()[0]["resident"] is None

    upcoming = client.get("/appointments/upcoming", headers=auth_headers).json()
    assert upcoming[0]["notification_message"].endswith("Resident's doctor appointment at General")

    notices = client.get("/notifications", headers=auth_headers).json()
    assert [n for n in notices if n["type"] == "appointment"] == []
