"""
Database connection and helpers.

Uses pymongo for MongoDB. Each Pydantic model in schemas.py maps to a
collection named after the lowercased class name (Product -> "product").
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient
from pymongo.database import Database

from logger import get_logger
from settings import Settings

logger = get_logger("database")

PRODUCTS = "product"
CATEGORIES = "category"
USERS = "user"
ORDERS = "order"


def connect(settings: Settings) -> Database:
    """Open a client for the configured URI and return the store database."""
    client = MongoClient(settings.mongodb_uri, tz_aware=True)
    logger.info("MongoDB client created for database %s", settings.database_name)
    return client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    """Create the unique and search indexes the storefront relies on."""
    db[PRODUCTS].create_index("slug", unique=True)
    db[PRODUCTS].create_index(
        [("name", TEXT), ("description", TEXT), ("tags", TEXT)],
        name="product_text",
    )
    db[PRODUCTS].create_index([("category", ASCENDING), ("is_featured", ASCENDING)])
    db[PRODUCTS].create_index("discounted_price")
    db[PRODUCTS].create_index([("rating", DESCENDING)])
    db[CATEGORIES].create_index("slug", unique=True)
    db[USERS].create_index("email", unique=True)
    db[ORDERS].create_index([("user", ASCENDING), ("created_at", DESCENDING)])
    db[ORDERS].create_index("gateway_order_id", sparse=True)


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the database attached to the app."""
    return request.app.state.db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId, None]) -> Optional[ObjectId]:
    """Parse an id from a path or form; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if not value:
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a Mongo document JSON friendly: `_id` -> `id`, ObjectIds -> str."""
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc
