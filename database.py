"""
MongoDB access helpers.

Each schema in schemas.py is stored in a collection named after the class
in lowercase. Datetimes are stored as naive UTC, which is what pymongo hands
back by default.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import Settings
from errors import PersistenceError, ValidationError


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.database_url)
    return client[settings.database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_storage(value: Any) -> Any:
    """Convert a python value into something BSON can hold.

    Plain dates become midnight datetimes; aware datetimes are shifted to
    naive UTC.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, dict):
        return {k: to_storage(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage(v) for v in value]
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return value


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except Exception:
        raise ValidationError("Invalid id format")


def maybe_oid(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize(doc: Any):
    if isinstance(doc, dict):
        d = {}
        for k, v in doc.items():
            if k == "_id":
                d["id"] = str(v)
            else:
                d[k] = serialize(v)
        return d
    if isinstance(doc, list):
        return [serialize(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        if doc.tzinfo is None:
            doc = doc.replace(tzinfo=timezone.utc)
        return doc.isoformat()
    return doc


def require_db(db: Optional[Database]) -> Database:
    if db is None:
        raise PersistenceError("Database not configured")
    return db


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    doc = to_storage(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = require_db(db)[collection_name].insert_one(doc)
    return str(result.inserted_id)


def update_document(db: Database, collection_name: str, id_str: str, data: Union[BaseModel, dict]) -> bool:
    updates = to_storage(data)
    updates.pop("_id", None)
    updates.pop("created_at", None)
    updates["updated_at"] = utcnow()
    result = require_db(db)[collection_name].update_one({"_id": oid(id_str)}, {"$set": updates})
    return result.matched_count > 0


def ensure_indexes(db: Database) -> None:
    db = require_db(db)
    db["user"].create_index("username", unique=True)
    for field in ("resident_id", "date", "type", "completed", "created_by"):
        db["appointment"].create_index(field)
    db["activity"].create_index("resident_id")


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = require_db(db)[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_ids(
    db: Database,
    collection_name: str,
    ids: Iterable[Any],
    projection: Optional[Dict[str, int]] = None,
) -> Dict[ObjectId, Dict[str, Any]]:
    """Batch lookup keyed by ObjectId; ids that are not valid are ignored."""
    wanted = {i for i in (maybe_oid(v) for v in ids) if i is not None}
    if not wanted:
        return {}
    docs = require_db(db)[collection_name].find({"_id": {"$in": list(wanted)}}, projection)
    return {d["_id"]: d for d in docs}
