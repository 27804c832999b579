import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as SchemaError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import activities
import appointments
import uploads
from config import Settings
from database import (
    connect,
    create_document,
    ensure_indexes,
    get_documents,
    maybe_oid,
    oid,
    require_db,
    serialize,
    update_document,
    utcnow,
)
from errors import ConflictError, InvalidCredentials, NotFoundError, ValidationError, register_exception_handlers
from notifications import derive_notifications
from residents import clean_diseases, upcoming_birthdays
from schemas import (
    ActivityCreate,
    AppointmentIn,
    Credentials,
    MealPlan as MealPlanSchema,
    Resident as ResidentSchema,
    ResidentForm,
    StaffFeedback as StaffFeedbackSchema,
    User as UserSchema,
)
from security import CurrentUser, create_access_token, get_current_user, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependencies

def get_db(request: Request) -> Database:
    return require_db(request.app.state.db)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def log_activity(db: Database, user_id: str, action: str) -> None:
    """Append to the caller's audit log; never fails the request."""
    user_oid = maybe_oid(user_id)
    if user_oid is None:
        logger.warning("Cannot log %r for invalid user id %r", action, user_id)
        return
    try:
        db["user"].update_one(
            {"_id": user_oid},
            {"$push": {"activity": {"action": action, "timestamp": utcnow()}}},
        )
    except PyMongoError as e:
        logger.error("Error logging activity %r for %s: %s", action, user_id, e)


def parse_resident_form(data: str) -> ResidentForm:
    try:
        return ResidentForm.model_validate_json(data)
    except SchemaError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationError("Invalid resident data", errors)


def resident_document(form: ResidentForm, document: Optional[str], photo: Optional[str]) -> dict:
    fields = form.model_dump(exclude={"existing_document", "existing_photo", "diseases"})
    resident = ResidentSchema(**fields)
    doc = resident.model_dump()
    doc["diseases"] = clean_diseases(form.diseases)
    doc["document"] = document
    doc["photo"] = photo
    return doc


def check_uploads(document: Optional[UploadFile], photo: Optional[UploadFile]) -> None:
    for field, upload in (("document", document), ("photo", photo)):
        if upload:
            uploads.check_content_type(field, upload.content_type)


def find_or_404(db: Database, collection: str, id_str: str, label: str) -> dict:
    doc = db[collection].find_one({"_id": oid(id_str)})
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


# Root & health

@router.get("/")
def root():
    return {"message": "Old Age Home API Running"}


@router.get("/health")
def health(request: Request):
    db = request.app.state.db
    response = {
        "backend": "running",
        "database": "not available",
        "database_name": None,
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "available"
            response["database_name"] = db.name
            try:
                response["collections"] = db.list_collection_names()[:20]
                response["database"] = "connected"
            except Exception as e:
                response["database"] = f"connected but error: {str(e)[:80]}"
    except Exception as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


# Auth

@router.post("/register")
def register(payload: Credentials, db: Database = Depends(get_db)):
    if db["user"].find_one({"username": payload.username}):
        raise ConflictError("User already exists")
    user = UserSchema(username=payload.username, password_hash=get_password_hash(payload.password))
    try:
        create_document(db, "user", user)
    except DuplicateKeyError:
        raise ConflictError("User already exists")
    logger.info("Registered user %s", payload.username)
    return {"message": "User registered"}


@router.post("/login")
def login(payload: Credentials, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"username": payload.username})
    if not user:
        raise ValidationError("User not found")
    if not verify_password(payload.password, user.get("password_hash", "")):
        raise InvalidCredentials()
    user_id = str(user["_id"])
    token = create_access_token({"id": user_id, "username": user["username"]}, settings)
    return {"token": token, "message": "Login successful", "user": {"id": user_id, "username": user["username"]}}


# Residents

@router.post("/residents", response_class=PlainTextResponse)
def create_resident(
    data: str = Form(...),
    document: Optional[UploadFile] = File(None),
    photo: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: CurrentUser = Depends(get_current_user),
):
    form = parse_resident_form(data)
    check_uploads(document, photo)
    document_name = uploads.save_upload(document, "document", settings) if document else None
    try:
        photo_name = uploads.save_upload(photo, "photo", settings) if photo else None
    except ValidationError:
        uploads.delete_upload(document_name, settings)
        raise
    create_document(db, "resident", resident_document(form, document_name, photo_name))
    log_activity(db, current.id, "Added a resident")
    return "Resident added"


@router.get("/residents")
def list_residents(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return [serialize(d) for d in get_documents(db, "resident", sort=[("name", 1)])]


@router.get("/residents/birthdays")
def resident_birthdays(days: int = Query(30, ge=0, le=366), db: Database = Depends(get_db),
                       current: CurrentUser = Depends(get_current_user)):
    residents = get_documents(db, "resident", {"dob": {"$ne": None}})
    return upcoming_birthdays(residents, utcnow().date(), days)


@router.get("/residents/{resident_id}")
def get_resident(resident_id: str, db: Database = Depends(get_db),
                 current: CurrentUser = Depends(get_current_user)):
    return serialize(find_or_404(db, "resident", resident_id, "Resident"))


@router.put("/residents/{resident_id}", response_class=PlainTextResponse)
def update_resident(
    resident_id: str,
    data: str = Form(...),
    document: Optional[UploadFile] = File(None),
    photo: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current: CurrentUser = Depends(get_current_user),
):
    existing = find_or_404(db, "resident", resident_id, "Resident")
    form = parse_resident_form(data)
    check_uploads(document, photo)

    document_name = form.existing_document
    if document:
        document_name = uploads.save_upload(document, "document", settings)
    photo_name = form.existing_photo
    if photo:
        try:
            photo_name = uploads.save_upload(photo, "photo", settings)
        except ValidationError:
            if document:
                uploads.delete_upload(document_name, settings)
            raise

    # old files go only once both new ones are on disk
    if document:
        uploads.delete_upload(existing.get("document"), settings)
    if photo:
        uploads.delete_upload(existing.get("photo"), settings)

    update_document(db, "resident", resident_id, resident_document(form, document_name, photo_name))
    log_activity(db, current.id, "Updated a resident")
    return "Resident updated"


@router.delete("/residents/{resident_id}", response_class=PlainTextResponse)
def delete_resident(resident_id: str, db: Database = Depends(get_db), settings: Settings = Depends(get_settings),
                    current: CurrentUser = Depends(get_current_user)):
    resident = find_or_404(db, "resident", resident_id, "Resident")
    for field in ("document", "photo"):
        uploads.delete_upload(resident.get(field), settings)
    removed = db[activities.COLLECTION].delete_many({"resident_id": str(resident["_id"])})
    db["resident"].delete_one({"_id": resident["_id"]})
    logger.info("Deleted resident %s and %d activity records", resident_id, removed.deleted_count)
    log_activity(db, current.id, "Deleted a resident")
    return "Resident deleted"


# Activities

@router.post("/activities")
def record_activity(payload: ActivityCreate, db: Database = Depends(get_db),
                    current: CurrentUser = Depends(get_current_user)):
    resident_oid = maybe_oid(payload.resident_id)
    if resident_oid is None or not db["resident"].find_one({"_id": resident_oid}, {"_id": 1}):
        raise ValidationError("resident_id: resident not found or invalid id")
    create_document(db, activities.COLLECTION, payload)
    return {"message": "Activity participation recorded"}


@router.get("/activities")
def list_activities(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return activities.list_activities(db, utcnow().date())


@router.get("/activities/summary")
def activity_summary(month: Optional[int] = None, year: Optional[int] = None, db: Database = Depends(get_db),
                     current: CurrentUser = Depends(get_current_user)):
    if not month or not year:
        raise ValidationError("Month and year are required")
    return activities.monthly_summary(db, month, year, utcnow().date())


# Users

@router.get("/users")
def list_users(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return [serialize(u) for u in db["user"].find({}, {"password_hash": 0})]


@router.delete("/users/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    res = db["user"].delete_one({"_id": oid(user_id)})
    if res.deleted_count == 0:
        raise NotFoundError("User not found")
    return {"message": "User deleted successfully"}


@router.get("/user-activity")
def user_activity(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return [serialize(u) for u in db["user"].find({}, {"username": 1, "activity": 1})]


# Meal plans

@router.post("/api/meal-plans", status_code=201)
def create_meal_plan(payload: MealPlanSchema, db: Database = Depends(get_db),
                     current: CurrentUser = Depends(get_current_user)):
    plan_id = create_document(db, "mealplan", payload)
    return serialize(db["mealplan"].find_one({"_id": oid(plan_id)}))


@router.get("/api/meal-plans")
def list_meal_plans(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return [serialize(d) for d in get_documents(db, "mealplan", sort=[("date", -1)])]


@router.put("/api/meal-plans/{plan_id}")
def update_meal_plan(plan_id: str, payload: MealPlanSchema, db: Database = Depends(get_db),
                     current: CurrentUser = Depends(get_current_user)):
    if not update_document(db, "mealplan", plan_id, payload):
        raise NotFoundError("Meal plan not found")
    return serialize(db["mealplan"].find_one({"_id": oid(plan_id)}))


@router.delete("/api/meal-plans/{plan_id}")
def delete_meal_plan(plan_id: str, db: Database = Depends(get_db),
                     current: CurrentUser = Depends(get_current_user)):
    res = db["mealplan"].delete_one({"_id": oid(plan_id)})
    if res.deleted_count == 0:
        raise NotFoundError("Meal plan not found")
    return {"message": "Meal plan deleted"}


# Staff feedback

@router.post("/staff-feedback")
def submit_feedback(payload: StaffFeedbackSchema, db: Database = Depends(get_db),
                    current: CurrentUser = Depends(get_current_user)):
    if payload.submitted_at is None:
        payload.submitted_at = utcnow()
    create_document(db, "stafffeedback", payload)
    return {"message": "Feedback submitted successfully"}


@router.get("/staff-feedback")
def list_feedback(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return [serialize(d) for d in get_documents(db, "stafffeedback", sort=[("submitted_at", -1)])]


# Appointments

@router.post("/appointments", status_code=201)
def create_appointment(payload: AppointmentIn, db: Database = Depends(get_db),
                       current: CurrentUser = Depends(get_current_user)):
    errors = appointments.validate_appointment(db, payload, utcnow(), created_by=current.id)
    if errors:
        raise ValidationError(errors[0], errors)
    appt_id = create_document(db, appointments.COLLECTION, appointments.build_appointment(payload, current.id))
    log_activity(db, current.id, "Added an appointment")
    return appointments.join_appointments(db, [appointments.get_appointment(db, appt_id)])[0]


@router.get("/appointments")
def list_appointments(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return appointments.join_appointments(db, appointments.find_appointments(db))


@router.get("/appointments/upcoming")
def upcoming_appointments(days: Optional[int] = Query(None, ge=0, le=3650), db: Database = Depends(get_db),
                          settings: Settings = Depends(get_settings),
                          current: CurrentUser = Depends(get_current_user)):
    window = settings.upcoming_window_days if days is None else days
    if window < 0:
        raise ValidationError("days must not be negative")
    return appointments.upcoming_view(db, utcnow(), window)


@router.get("/appointments/doctor")
def doctor_appointments(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return appointments.join_appointments(db, appointments.find_appointments(db, type_="doctor"))


@router.get("/appointments/family")
def family_appointments(db: Database = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    return appointments.join_appointments(db, appointments.find_appointments(db, type_="family"))


@router.get("/appointments/search/{query}")
def search_appointments(query: str, db: Database = Depends(get_db),
                        current: CurrentUser = Depends(get_current_user)):
    return appointments.join_appointments(db, appointments.search_appointments(db, query))


@router.put("/appointments/{appointment_id}")
def update_appointment(appointment_id: str, payload: AppointmentIn, db: Database = Depends(get_db),
                       current: CurrentUser = Depends(get_current_user)):
    existing = find_or_404(db, appointments.COLLECTION, appointment_id, "Appointment")
    errors = appointments.validate_appointment(db, payload, utcnow(), creating=False)
    if errors:
        raise ValidationError(errors[0], errors)
    updated = appointments.build_appointment(payload, existing.get("created_by"), existing.get("completed", False))
    update_document(db, appointments.COLLECTION, appointment_id, updated)
    log_activity(db, current.id, "Updated an appointment")
    return appointments.join_appointments(db, [appointments.get_appointment(db, appointment_id)])[0]


@router.delete("/appointments/{appointment_id}")
def delete_appointment(appointment_id: str, db: Database = Depends(get_db),
                       current: CurrentUser = Depends(get_current_user)):
    res = db[appointments.COLLECTION].delete_one({"_id": oid(appointment_id)})
    if res.deleted_count == 0:
        raise NotFoundError("Appointment not found")
    log_activity(db, current.id, "Deleted an appointment")
    return {"message": "Appointment deleted"}


@router.patch("/appointments/{appointment_id}/complete")
def complete_appointment(appointment_id: str, db: Database = Depends(get_db),
                         current: CurrentUser = Depends(get_current_user)):
    find_or_404(db, appointments.COLLECTION, appointment_id, "Appointment")
    update_document(db, appointments.COLLECTION, appointment_id, {"completed": True})
    log_activity(db, current.id, "Completed an appointment")
    return appointments.join_appointments(db, [appointments.get_appointment(db, appointment_id)])[0]


# Notifications

@router.get("/notifications")
def notifications(db: Database = Depends(get_db), settings: Settings = Depends(get_settings),
                  current: CurrentUser = Depends(get_current_user)):
    now = utcnow()
    upcoming = appointments.upcoming_appointments(db, now, settings.upcoming_window_days)
    residents = get_documents(db, "resident")
    return serialize(derive_notifications(upcoming, residents, now))


# App factory

def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = FastAPI(title="Old Age Home API", debug=False)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app, debug=settings.is_development)

    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    try:
        ensure_indexes(app.state.db)
    except PyMongoError as e:
        logger.warning("Could not create indexes: %s", e)

    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
    app.include_router(router)

    logger.info("Old Age Home API configured (database=%s, env=%s)", settings.database_name, settings.environment)
    return app


if __name__ == "__main__":
    import uvicorn
    port = Settings.from_env().port
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=port)
