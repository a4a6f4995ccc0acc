"""
MongoDB access helpers.

The client is created once per process (see ``deps.build_services``) and the
database handle is passed explicitly to every helper and service.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import InvalidInput
from logger import get_logger

logger = get_logger("database")


def connect(database_url: str, database_name: str) -> tuple[MongoClient, Database]:
    client = MongoClient(database_url, serverSelectionTimeoutMS=5000)
    logger.info("MongoDB client created for database %s", database_name)
    return client, client[database_name]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        raise InvalidInput("Invalid id")


def ref_id(value: Any) -> Optional[str]:
    """Normalize a stored reference (str, ObjectId or populated dict) to an id string, or None."""
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    if value is None:
        return None
    value = str(value)
    return str(ObjectId(value)) if ObjectId.is_valid(value) else None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: Any) -> Any:
    """Make a Mongo document JSON friendly: ``_id`` -> ``id`` and ObjectIds -> str."""
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = serialize_doc(v)
    return out
