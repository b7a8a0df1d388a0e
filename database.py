"""
MongoDB access.

One MongoClient per process; handlers receive the database through the
`get_db` dependency so tests can swap in another handle.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import get_settings
from responses import ApiError

logger = logging.getLogger(__name__)

settings = get_settings()

client: MongoClient = MongoClient(settings.database_url)
db: Database = client[settings.database_name]

# Never serialized to clients
SENSITIVE_FIELDS = ("password", "refresh_token")


def get_db() -> Database:
    return db


def ensure_indexes(database: Database) -> None:
    database["users"].create_index([("username", ASCENDING)], unique=True)
    database["users"].create_index([("email", ASCENDING)], unique=True)
    database["subscriptions"].create_index(
        [("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True
    )
    database["likes"].create_index([("liked_by", ASCENDING), ("video", ASCENDING)], unique=True)
    database["videos"].create_index([("owner", ASCENDING), ("created_at", ASCENDING)])
    database["comments"].create_index([("video", ASCENDING), ("created_at", ASCENDING)])
    logger.info("Indexes ensured on database %s", database.name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document stamped with created_at/updated_at and return it with its _id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    doc["_id"] = database[collection_name].insert_one(doc).inserted_id
    return doc


def is_valid_object_id(value: Optional[str]) -> bool:
    return bool(value) and ObjectId.is_valid(value)


def objid(id_str: str, what: str = "id") -> ObjectId:
    if not is_valid_object_id(id_str):
        raise ApiError(400, f"Invalid {what}")
    return ObjectId(id_str)


def to_str_id(doc: Any) -> Any:
    """Make a Mongo document JSON friendly: _id -> id, ObjectId -> str, datetime -> isoformat."""
    if isinstance(doc, list):
        return [to_str_id(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    d = {}
    for k, v in doc.items():
        if k in SENSITIVE_FIELDS:
            continue
        d["id" if k == "_id" else k] = to_str_id(v)
    return d
