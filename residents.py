"""
Resident helpers: disease list clean-up and date-of-birth arithmetic.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from schemas import Disease


def clean_diseases(diseases: List[Disease]) -> List[Dict[str, Any]]:
    """Drop diseases and medicines that have no name."""
    cleaned = []
    for disease in diseases:
        name = (disease.name or "").strip()
        if not name:
            continue
        medicines = [
            {**m.model_dump(), "name": m.name.strip()}
            for m in disease.medicines
            if m.name and m.name.strip()
        ]
        cleaned.append({"name": name, "medicines": medicines})
    return cleaned


def parse_dob(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _birthday_in(year: int, dob: date) -> date:
    try:
        return date(year, dob.month, dob.day)
    except ValueError:
        # 29 February outside a leap year
        return date(year, 3, 1)


def next_birthday(dob: date, today: date) -> date:
    upcoming = _birthday_in(today.year, dob)
    if upcoming < today:
        upcoming = _birthday_in(today.year + 1, dob)
    return upcoming


def calculate_age(dob: Optional[date], today: date) -> Optional[int]:
    if dob is None:
        return None
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def upcoming_birthdays(residents: List[Dict[str, Any]], today: date, days: int) -> List[Dict[str, Any]]:
    """Residents whose next birthday is within `days` days, soonest first."""
    rows = []
    for resident in residents:
        dob = parse_dob(resident.get("dob"))
        if dob is None:
            continue
        upcoming = next_birthday(dob, today)
        days_left = (upcoming - today).days
        if days_left > days:
            continue
        rows.append({
            "id": str(resident["_id"]),
            "name": resident.get("name"),
            "room": resident.get("room"),
            "photo": resident.get("photo"),
            "dob": dob.isoformat(),
            "next_birthday": upcoming.isoformat(),
            "days_left": days_left,
            "turns": upcoming.year - dob.year,
        })
    rows.sort(key=lambda r: r["next_birthday"])
    return rows
