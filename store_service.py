import logging
import re
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_documents
from errors import AppError
from schemas import Store as StoreSchema
from unit_of_work import MongoUnitOfWork
from utils import sanitize, to_obj_id

logger = logging.getLogger(__name__)

STORE_NOT_FOUND = "Store not found"


def build_store_query(
    lat: float,
    lon: float,
    category: Optional[str] = None,
    name: Optional[str] = None,
    max_distance: Optional[int] = None,
) -> Dict[str, Any]:
    q: Dict[str, Any] = {
        "location": {
            "$near": {
                "$geometry": {"type": "Point", "coordinates": [lon, lat]},
                "$maxDistance": max_distance or config.STORE_SEARCH_RADIUS_METERS,
            }
        }
    }
    if category:
        q["category"] = category
    if name:
        q["name"] = {"$regex": re.escape(name), "$options": "i"}
    return q


def _comments_for(db: Database, store_id: str) -> List[Dict]:
    return [sanitize(c) for c in get_documents(db, "comment", {"store_id": store_id})]


def get_stores(db: Database, lat: float, lon: float, category: Optional[str] = None, name: Optional[str] = None):
    return [sanitize(s) for s in db["store"].find(build_store_query(lat, lon, category, name))]


def post_store(db: Database, data: StoreSchema) -> Dict[str, Any]:
    if db["store"].find_one({"owner_id": data.owner_id}, {"_id": 1}):
        raise AppError.conflict("User already owns a store")
    try:
        store = create_document(db, "store", data)
    except DuplicateKeyError:
        raise AppError.conflict("User already owns a store")
    if store is None:
        raise AppError.internal("Failed to register store")

    logger.info("User %s registered store %s", data.owner_id, store["_id"])
    return {"store": sanitize(store), "comments": []}


def get_store(db: Database, user_id: str) -> Dict[str, Any]:
    store = db["store"].find_one({"owner_id": user_id})
    if store is None:
        raise AppError.not_found(STORE_NOT_FOUND)
    return {"store": sanitize(store), "comments": _comments_for(db, str(store["_id"]))}


def get_store_by_id(db: Database, store_id: str) -> Dict[str, Any]:
    store = db["store"].find_one({"_id": to_obj_id(store_id)})
    if store is None:
        raise AppError.not_found(STORE_NOT_FOUND)
    return {"store": sanitize(store), "comments": _comments_for(db, str(store["_id"]))}


def delete_store(db: Database, user_id: str, unit_of_work=MongoUnitOfWork) -> None:
    """Remove the user's store together with its comments, bookmarks and sent notifications."""
    try:
        with unit_of_work(db) as uow:
            db, session = uow.db, uow.session
            store = db["store"].find_one({"owner_id": user_id}, session=session)
            if store is None:
                raise AppError.not_found(STORE_NOT_FOUND)
            store_id = str(store["_id"])
            db["comment"].delete_many({"store_id": store_id}, session=session)
            db["notification"].delete_many({"sender": store_id}, session=session)
            db["bookmark"].delete_many({"store_id": store_id}, session=session)
            db["store"].delete_one({"_id": store["_id"]}, session=session)
    except AppError:
        raise
    except Exception as e:
        logger.exception("Deleting store of user %s failed, transaction rolled back", user_id)
        raise AppError.internal("Store deletion failed; all changes were rolled back.") from e

    logger.info("Deleted store of user %s", user_id)
