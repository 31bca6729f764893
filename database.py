"""
MongoDB access for the Store Review API.

`db` is None when DATABASE_URL is not configured; routes report that as a
500 instead of failing at import time.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, GEOSPHERE, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = MongoClient(config.DATABASE_URL) if config.DATABASE_URL else None
db: Optional[Database] = client[config.DATABASE_NAME] if client is not None else None


def create_document(
    database: Database,
    collection_name: str,
    data: Union[BaseModel, Dict[str, Any]],
    session=None,
) -> Optional[Dict[str, Any]]:
    """Insert a document, stamping created_at/updated_at. Returns it with its _id,
    or None when the server did not acknowledge the write.

    None fields are left out so sparse indexes skip them.
    """
    doc = data.model_dump(exclude_none=True) if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    res = database[collection_name].insert_one(doc, session=session)
    if not res.acknowledged:
        return None
    doc["_id"] = res.inserted_id
    return doc


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    session=None,
) -> List[Dict[str, Any]]:
    return list(database[collection_name].find(filter_dict or {}, session=session))


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True, sparse=True)
    database["user"].create_index(
        [("oauth", ASCENDING), ("oauth_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"oauth_id": {"$exists": True}},
    )
    database["store"].create_index([("location", GEOSPHERE)])
    database["store"].create_index([("owner_id", ASCENDING)], unique=True)
    database["comment"].create_index([("store_id", ASCENDING)])
    database["comment"].create_index([("author_id", ASCENDING)])
    database["bookmark"].create_index([("user_id", ASCENDING)])
    database["bookmark"].create_index([("store_id", ASCENDING)])
    database["notification"].create_index([("recipients", ASCENDING)])
    logger.info("MongoDB indexes ensured on %s", database.name)
