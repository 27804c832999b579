"""
Activity participation: joins and the monthly per-resident summary.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Tuple

from pymongo.database import Database

from database import find_by_ids, get_documents, maybe_oid, serialize
from errors import ValidationError
from residents import calculate_age, parse_dob

COLLECTION = "activity"


def month_bounds(month: int, year: int) -> Tuple[datetime, datetime]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if not 1 <= year <= 9998:
        raise ValidationError("Year out of range")
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


def _resident_brief(resident: Dict[str, Any], today: date) -> Dict[str, Any]:
    return {
        "id": str(resident["_id"]),
        "name": resident.get("name"),
        "age": calculate_age(parse_dob(resident.get("dob")), today),
    }


def list_activities(db: Database, today: date) -> List[Dict[str, Any]]:
    docs = get_documents(db, COLLECTION, sort=[("date", -1)])
    residents = find_by_ids(db, "resident", (d.get("resident_id") for d in docs), {"name": 1, "dob": 1})
    items = []
    for doc in docs:
        resident = residents.get(maybe_oid(doc.get("resident_id")))
        item = serialize(doc)
        item["resident"] = _resident_brief(resident, today) if resident else None
        items.append(item)
    return items


def summarize_participation(
    activities: List[Dict[str, Any]],
    residents: Dict[Any, Dict[str, Any]],
    today: date,
) -> List[Dict[str, Any]]:
    """One row per resident with at least one activity, in encounter order."""
    grouped: Dict[str, Dict[str, Any]] = {}
    for entry in activities:
        resident = residents.get(maybe_oid(entry.get("resident_id")))
        if resident is None:
            continue
        key = str(resident["_id"])
        row = grouped.get(key)
        if row is None:
            brief = _resident_brief(resident, today)
            row = grouped[key] = {
                "resident_id": key,
                "name": brief["name"],
                "age": brief["age"],
                "count": 0,
                "activities": [],
            }
        row["count"] += 1
        row["activities"].append({"activity": entry.get("activity"), "date": serialize(entry.get("date"))})
    return list(grouped.values())


def monthly_summary(db: Database, month: int, year: int, today: date) -> List[Dict[str, Any]]:
    start, end = month_bounds(month, year)
    entries = get_documents(db, COLLECTION, {"date": {"$gte": start, "$lt": end}}, sort=[("date", 1)])
    residents = find_by_ids(db, "resident", (e.get("resident_id") for e in entries), {"name": 1, "dob": 1})
    return summarize_participation(entries, residents, today)
