"""
Appointment write-path validation and the query layer.

Validation returns a list of messages instead of raising, so callers decide
how to report it. Reads join each appointment with its resident and creator
in one batched lookup per collection.
"""

import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from database import find_by_ids, get_documents, maybe_oid, require_db, serialize, to_naive_utc
from notifications import appointment_message, days_left
from schemas import Appointment, AppointmentIn

COLLECTION = "appointment"

MAX_LENGTHS = {
    "purpose": 500,
    "notes": 1000,
    "doctor_name": 100,
    "hospital_name": 100,
    "relative_name": 100,
    "relation": 50,
}

REQUIRED_BY_TYPE = {
    "doctor": ("doctor_name", "hospital_name"),
    "family": ("relative_name", "relation"),
}

PHONE_RE = re.compile(r"^[0-9]{10,15}$")

SEARCH_FIELDS = ("purpose", "doctor_name", "hospital_name", "relative_name", "relation", "notes")


def validate_appointment(
    db: Database,
    payload: AppointmentIn,
    now: datetime,
    created_by: Optional[str] = None,
    creating: bool = True,
) -> List[str]:
    errors = []
    db = require_db(db)

    required = REQUIRED_BY_TYPE[payload.type]
    missing = [f for f in required if not getattr(payload, f)]
    if missing:
        errors.append(
            f"{payload.type.capitalize()} appointments require {' and '.join(required)} "
            f"(missing: {', '.join(missing)})"
        )

    for field, limit in MAX_LENGTHS.items():
        value = getattr(payload, field)
        if value and len(value) > limit:
            errors.append(f"{field} cannot be more than {limit} characters")

    if payload.type == "family" and payload.relative_number and not PHONE_RE.match(payload.relative_number):
        errors.append(f"relative_number: {payload.relative_number} is not a valid phone number")

    if creating and to_naive_utc(payload.date) <= now:
        errors.append("date: appointment date must be in the future")

    resident_oid = maybe_oid(payload.resident_id)
    if resident_oid is None or db["resident"].find_one({"_id": resident_oid}, {"_id": 1}) is None:
        errors.append("resident_id: resident not found or invalid id")

    if creating:
        user_oid = maybe_oid(created_by)
        if user_oid is None or db["user"].find_one({"_id": user_oid}, {"_id": 1}) is None:
            errors.append("created_by: user not found or invalid id")

    return errors


def build_appointment(payload: AppointmentIn, created_by: str, completed: bool = False) -> Appointment:
    """Keep only the fields that belong to the declared type."""
    data = payload.model_dump()
    kept = set(REQUIRED_BY_TYPE[payload.type])
    if payload.type == "family":
        kept.add("relative_number")
    for field in ("doctor_name", "hospital_name", "relative_name", "relation", "relative_number"):
        if field not in kept:
            data[field] = None
    if payload.type == "family" and data.get("relative_number") is None:
        data["relative_number"] = ""
    data["notes"] = data.get("notes") or ""
    data["date"] = to_naive_utc(payload.date)
    return Appointment(**data, created_by=created_by, completed=completed)


def join_appointments(db: Database, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    residents = find_by_ids(db, "resident", (d.get("resident_id") for d in docs),
                            {"name": 1, "room": 1, "photo": 1})
    users = find_by_ids(db, "user", (d.get("created_by") for d in docs), {"username": 1})
    joined = []
    for doc in docs:
        resident = residents.get(maybe_oid(doc.get("resident_id")))
        creator = users.get(maybe_oid(doc.get("created_by")))
        item = serialize(doc)
        item["resident"] = serialize(resident) if resident else None
        item["creator"] = serialize(creator) if creator else None
        joined.append(item)
    return joined


def find_appointments(
    db: Database,
    type_: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    completed: Optional[bool] = None,
) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if type_:
        query["type"] = type_
    if start or end:
        window = {}
        if start:
            window["$gte"] = start
        if end:
            window["$lte"] = end
        query["date"] = window
    if completed is not None:
        query["completed"] = True if completed else {"$ne": True}
    return get_documents(db, COLLECTION, query, sort=[("date", 1)])


def get_appointment(db: Database, id_str: str) -> Optional[Dict[str, Any]]:
    appt_oid = maybe_oid(id_str)
    if appt_oid is None:
        return None
    return require_db(db)[COLLECTION].find_one({"_id": appt_oid})


def upcoming_appointments(db: Database, now: datetime, days: int = 7) -> List[Dict[str, Any]]:
    return find_appointments(db, start=now, end=now + timedelta(days=days), completed=False)


def upcoming_view(db: Database, now: datetime, days: int = 7) -> List[Dict[str, Any]]:
    docs = upcoming_appointments(db, now, days)
    today = now.date()
    view = []
    for doc, item in zip(docs, join_appointments(db, docs)):
        left = days_left(doc["date"], today)
        resident_name = item["resident"]["name"] if item["resident"] else None
        item.update({
            "days_left": left,
            "notification_type": item["type"],
            "notification_message": appointment_message(item, resident_name, left),
            "is_today": left == 0,
            "is_tomorrow": left == 1,
        })
        view.append(item)
    return view


def search_appointments(db: Database, text: str) -> List[Dict[str, Any]]:
    pattern = {"$regex": re.escape(text), "$options": "i"}
    clauses: List[Dict[str, Any]] = [{field: pattern} for field in SEARCH_FIELDS]
    resident_ids = [str(r["_id"]) for r in get_documents(db, "resident", {"name": pattern})]
    if resident_ids:
        clauses.append({"resident_id": {"$in": resident_ids}})
    return get_documents(db, COLLECTION, {"$or": clauses}, sort=[("date", 1)])
