import json
from datetime import date, datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        secret_key="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        database_name="old_age_home_test",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["old_age_home_test"]


@pytest.fixture
def client(settings, db):
    app = create_app(settings, db=db)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client):
    client.post("/register", json={"username": "nurse", "password": "s3cret"})
    res = client.post("/login", json={"username": "nurse", "password": "s3cret"})
    return {"Authorization": res.json()["token"]}


def resident_payload(**overrides):
    data = {
        "name": "Margaret Smith",
        "dob": "1942-03-14",
        "gender": "female",
        "emergency_contact": "John Smith 5550001111",
        "room": "12B",
        "history": "Hip replacement 2019",
        "dietary": "Low sodium",
        "allergies": "Penicillin",
        "diseases": [
            {"name": "Hypertension", "medicines": [{"name": "Amlodipine", "dosage": "5mg", "frequency": "daily"}]},
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_resident(client, auth_headers, db):
    def _make(**overrides):
        payload = resident_payload(**overrides)
        res = client.post("/residents", data={"data": json.dumps(payload)}, headers=auth_headers)
        assert res.status_code == 200, res.text
        return db["resident"].find_one({"name": payload["name"]})
    return _make


def in_days(days, hours=0):
    return (datetime.now(timezone.utc) + timedelta(days=days, hours=hours)).isoformat()


def dob_in(days, year=1952):
    upcoming = datetime.now(timezone.utc).date() + timedelta(days=days)
    return date(year, upcoming.month, upcoming.day).isoformat()
