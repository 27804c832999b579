"""
Old Age Home - Database Schemas

Each Pydantic model corresponds to a MongoDB collection (lowercased class name).
Request-only models live at the bottom of the file.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Medicine(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = ""
    dosage: Optional[str] = None
    frequency: Optional[str] = None


class Disease(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = ""
    medicines: List[Medicine] = []


class Resident(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    dob: date
    gender: Literal['male', 'female', 'other']
    admission_date: date = Field(default_factory=date.today)
    emergency_contact: str = Field(..., min_length=1)
    history: Optional[str] = None
    room: str = Field(..., min_length=1)
    dietary: Optional[str] = None
    diseases: List[Disease] = []
    allergies: Optional[str] = None
    document: Optional[str] = None  # stored file name under the upload dir
    photo: Optional[str] = None


class ActivityLogEntry(BaseModel):
    action: str
    timestamp: datetime


class User(BaseModel):
    username: str = Field(..., min_length=1)
    password_hash: str
    activity: List[ActivityLogEntry] = []


class Activity(BaseModel):
    resident_id: str
    activity: str = Field(..., min_length=1)
    date: datetime


class Appointment(BaseModel):
    resident_id: str
    type: Literal['doctor', 'family']
    date: datetime
    purpose: str
    notes: str = ""
    completed: bool = False
    created_by: str
    doctor_name: Optional[str] = None
    hospital_name: Optional[str] = None
    relative_name: Optional[str] = None
    relation: Optional[str] = None
    relative_number: Optional[str] = None


class Meals(BaseModel):
    breakfast: Optional[str] = None
    lunch: Optional[str] = None
    dinner: Optional[str] = None


class MealPlan(BaseModel):
    resident_name: str = Field(..., min_length=1)
    date: date
    meals: Meals = Meals()
    notes: Optional[str] = None
    caregiver: Optional[str] = None
    allergies: List[str] = []
    dietary_restrictions: List[str] = []


class StaffFeedback(BaseModel):
    staff_name: str = Field(..., min_length=1)
    resident_involved: Optional[str] = None
    rating: Optional[int] = Field(None, ge=0, le=5)
    experience: Optional[str] = None
    disagreement: Optional[str] = None
    suggestion: Optional[str] = None
    complaint: Optional[str] = None
    submitted_at: Optional[datetime] = None


# Request bodies

class Credentials(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ResidentForm(Resident):
    # multipart `data` field; existing_* keep the current files on update
    existing_document: Optional[str] = None
    existing_photo: Optional[str] = None


class ActivityCreate(BaseModel):
    resident_id: str
    activity: str = Field(..., min_length=1)
    date: datetime


class AppointmentIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    resident_id: str
    type: Literal['doctor', 'family']
    date: datetime
    purpose: str = Field(..., min_length=1)
    notes: Optional[str] = ""
    doctor_name: Optional[str] = None
    hospital_name: Optional[str] = None
    relative_name: Optional[str] = None
    relation: Optional[str] = None
    relative_number: Optional[str] = None
