"""
Time-relative notices for staff: upcoming appointments and birthdays.

days_left is the number of UTC calendar days from today to the target date,
never negative. The same phrasing is used by /appointments/upcoming and
/notifications.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from residents import next_birthday, parse_dob

BIRTHDAY_WINDOW_DAYS = 7


def days_left(target: datetime, today: date) -> int:
    return max(0, (target.date() - today).days)


def _countdown(days: int, subject: str) -> str:
    if days == 0:
        return f"Today is {subject}"
    if days == 1:
        return f"1 day left for {subject}"
    return f"{days} days left for {subject}"


def appointment_message(appointment: Dict[str, Any], resident_name: Optional[str], days: int) -> str:
    name = resident_name or "Resident"
    if appointment.get("type") == "doctor":
        hospital = appointment.get("hospital_name") or "hospital"
        return _countdown(days, f"{name}'s doctor appointment at {hospital}")
    relative = appointment.get("relative_name") or "family"
    return _countdown(days, f"{name}'s family appointment with {relative}")


def birthday_message(resident_name: str, days: int) -> str:
    if days == 0:
        return f"Today is {resident_name}'s birthday!"
    return _countdown(days, f"{resident_name}'s birthday")


def appointment_notices(
    appointments: Iterable[Dict[str, Any]],
    residents_by_id: Dict[str, Dict[str, Any]],
    today: date,
) -> List[Dict[str, Any]]:
    notices = []
    for appt in appointments:
        if appt.get("completed"):
            continue
        resident = residents_by_id.get(str(appt.get("resident_id")))
        when = appt.get("date")
        if resident is None or not isinstance(when, datetime):
            continue
        days = days_left(when, today)
        notices.append({
            "type": "appointment",
            "id": str(appt["_id"]),
            "message": appointment_message(appt, resident.get("name"), days),
            "date": when,
            "resident_id": str(resident["_id"]),
            "days_left": days,
        })
    return notices


def birthday_notices(
    residents: Iterable[Dict[str, Any]],
    today: date,
    window: int = BIRTHDAY_WINDOW_DAYS,
) -> List[Dict[str, Any]]:
    notices = []
    for resident in residents:
        dob = parse_dob(resident.get("dob"))
        name = resident.get("name")
        if dob is None or not name:
            continue
        upcoming = next_birthday(dob, today)
        days = (upcoming - today).days
        if days > window:
            continue
        notices.append({
            "type": "birthday",
            "id": str(resident["_id"]),
            "message": birthday_message(name, days),
            "date": datetime(upcoming.year, upcoming.month, upcoming.day),
            "resident_id": str(resident["_id"]),
            "days_left": days,
        })
    return notices


def derive_notifications(
    appointments: Iterable[Dict[str, Any]],
    residents: List[Dict[str, Any]],
    now: datetime,
) -> List[Dict[str, Any]]:
    """Merge appointment and birthday notices, earliest first."""
    today = now.date()
    residents_by_id = {str(r["_id"]): r for r in residents}
    notices = appointment_notices(appointments, residents_by_id, today)
    notices.extend(birthday_notices(residents, today))
    notices.sort(key=lambda n: n["date"])
    return notices
