from typing import Any, Dict, Iterable, Optional

from bson import ObjectId
from bson.errors import InvalidId

from errors import AppError


def to_obj_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise AppError.bad_request("Invalid id")


def sanitize(doc: Optional[Dict], exclude: Iterable[str] = ()) -> Optional[Dict]:
    """Copy a Mongo document with _id renamed to id and the given fields dropped."""
    if not doc:
        return doc
    d = {k: v for k, v in doc.items() if k not in exclude}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def public_user(user: Dict) -> Dict[str, Any]:
    """The minimal projection handed back after register/login."""
    return {
        "id": str(user["_id"]),
        "nickname": user.get("nickname"),
        "role": user.get("role", "user"),
        "thumbnail": user.get("thumbnail") or "",
    }
