"""
MongoDB access layer.

One MongoClient per process; collections are named after the lowercase
model name in schemas.py ("user", "store", "productdetailimage", ...).
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)


def connect(settings: Settings) -> Tuple[Optional[MongoClient], Optional[Database]]:
    if not settings.database_url or not settings.database_name:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return None, None
    client = MongoClient(settings.database_url)
    return client, client[settings.database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)
    db["user"].create_index([("social_id", ASCENDING), ("login_type", ASCENDING)])
    db["brand"].create_index("user_id", unique=True)
    db["store"].create_index("subdomain", unique=True)
    db["store"].create_index("user_id", unique=True)
    db["store"].create_index([("subdomain", ASCENDING), ("status", ASCENDING), ("is_published", ASCENDING)])
    db["product"].create_index([("store_id", ASCENDING), ("sku", ASCENDING)], unique=True)
    db["product"].create_index([
        ("store_id", ASCENDING),
        ("status", ASCENDING),
        ("is_featured", DESCENDING),
        ("created_at", DESCENDING),
    ])
    db["product"].create_index([("category_id", ASCENDING), ("status", ASCENDING)])
    db["productdetailimage"].create_index([("product_id", ASCENDING), ("sort_order", ASCENDING)])
    db["category"].create_index([("status", ASCENDING), ("sort_order", ASCENDING), ("name", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id from a path or body; None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict], session=None) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("created_at", stamp)
    data_dict["updated_at"] = stamp
    result = db[collection_name].insert_one(data_dict, session=session)
    data_dict["_id"] = result.inserted_id
    if isinstance(data, dict):
        data.update(data_dict)
    return str(result.inserted_id)


def update_document(db: Database, collection_name: str, document_id: ObjectId, changes: Dict[str, Any], session=None) -> None:
    changes = dict(changes)
    changes["updated_at"] = now()
    db[collection_name].update_one({"_id": document_id}, {"$set": changes}, session=session)


@contextmanager
def transaction(client: Optional[MongoClient], enabled: bool) -> Iterator[Any]:
    """Yield a session with an open transaction, or None when disabled.

    The transaction commits when the block exits normally and is aborted
    if it raises; the error propagates either way.
    """
    if not enabled or client is None:
        yield None
        return
    with client.start_session() as session:
        session.start_transaction()
        try:
            yield session
        except Exception:
            session.abort_transaction()
            raise
        session.commit_transaction()
