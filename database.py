"""
MongoDB access for the planner API.

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; routes get
the handle through the `get_db` dependency so tests can swap in another one.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

import config
from errors import NotFoundError, ServerError, ValidationError
from timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    try:
        _client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
        db = _client[config.DATABASE_NAME]
        logger.info(f"MongoDB client configured for database {config.DATABASE_NAME}")
    except Exception as e:
        logger.error(f"Failed to configure MongoDB client: {e}")
        db = None


def get_db() -> Database:
    if db is None:
        raise ServerError("Database not configured")
    return db


def ensure_indexes(database: Database):
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["task"].create_index([("user_id", ASCENDING), ("due_date", ASCENDING)])
    database["task"].create_index([("user_id", ASCENDING), ("recurrence_rule", ASCENDING)])
    database["journal"].create_index([("user_id", ASCENDING), ("entry_date", DESCENDING)])


def parse_object_id(raw: str) -> ObjectId:
    try:
        return ObjectId(raw)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Stringify `_id` and mark stored datetimes as UTC."""
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out[key] = str(value)
        elif isinstance(value, datetime):
            out[key] = as_utc(value)
        else:
            out[key] = value
    return out


def create_document(database: Database, collection_name: str, data: Dict[str, Any]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    now = utcnow().replace(tzinfo=None)
    doc = {**data, "created_at": now, "updated_at": now}
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(doc) for doc in cursor]


# ---------- Owner-scoped helpers ----------
def get_owned(database: Database, collection_name: str, doc_id: str, owner_id: str, label: str) -> Dict[str, Any]:
    doc = database[collection_name].find_one({"_id": parse_object_id(doc_id), "user_id": owner_id})
    if not doc:
        raise NotFoundError(f"{label} not found")
    return serialize(doc)


def update_owned(
    database: Database, collection_name: str, doc_id: str, owner_id: str, update: Dict[str, Any], label: str
) -> Dict[str, Any]:
    oid = parse_object_id(doc_id)
    update = {**update, "updated_at": utcnow().replace(tzinfo=None)}
    res = database[collection_name].find_one_and_update(
        {"_id": oid, "user_id": owner_id},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not res:
        raise NotFoundError(f"{label} not found")
    return serialize(res)


def delete_owned(database: Database, collection_name: str, doc_id: str, owner_id: str, label: str) -> bool:
    res = database[collection_name].delete_one({"_id": parse_object_id(doc_id), "user_id": owner_id})
    if res.deleted_count != 1:
        raise NotFoundError(f"{label} not found")
    return True
