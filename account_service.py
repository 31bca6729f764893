"""
Account operations: local and Kakao sign-in, profile edits, and the
transactional account deletion that cascades over every collection that
references a user or the store they own.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import create_document
from errors import AppError
from kakao import OAuthProfile
from schemas import User as UserSchema
from security import (
    REFRESH,
    create_access_token,
    decode_token,
    hash_password,
    issue_token_pair,
    token_payload,
    verify_password,
)
from unit_of_work import MongoUnitOfWork
from utils import public_user, sanitize, to_obj_id

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
USER_NOT_FOUND = "User not found"
DELETE_FAILED = "Account deletion failed; all changes were rolled back."
KAKAO_REGISTER_FAILED = "Failed to register Kakao user"


def register(db: Database, email: str, password: str, nickname: str) -> Dict[str, Any]:
    if db["user"].find_one({"email": email}):
        raise AppError.conflict("Email already registered")

    user_doc = UserSchema(
        email=email,
        password_hash=hash_password(password),
        nickname=nickname,
        role="user",
        oauth="local",
    )
    try:
        user = create_document(db, "user", user_doc)
    except DuplicateKeyError:
        raise AppError.conflict("Email already registered")
    if user is None:
        raise AppError.internal("Failed to register user")

    logger.info("Registered user %s", user["_id"])
    return {**issue_token_pair(user), "user": public_user(user)}


def check_email(db: Database, email: str) -> bool:
    """True when no account uses this email yet."""
    return db["user"].find_one({"email": email}, {"_id": 1}) is None


def login(db: Database, email: str, password: str) -> Dict[str, Any]:
    user = db["user"].find_one({"email": email})
    if user is None or not verify_password(password, user.get("password_hash")):
        logger.warning("Failed login attempt for %s", email)
        raise AppError.unauthorized(INVALID_CREDENTIALS)

    return {**issue_token_pair(user), "user": public_user(user)}


def kakao_login(db: Database, profile: OAuthProfile) -> Dict[str, str]:
    user = db["user"].find_one({"oauth": profile.provider, "oauth_id": profile.provider_id})

    if user is None:
        user_doc = UserSchema(
            nickname=profile.nickname[:30],
            oauth=profile.provider,
            oauth_id=profile.provider_id,
            thumbnail=profile.thumbnail,
        )
        user = _create_oauth_user(db, user_doc)
        logger.info("Registered %s user %s", profile.provider, user["_id"])

    return issue_token_pair(user)


def _create_oauth_user(db: Database, user_doc: UserSchema) -> Dict[str, Any]:
    try:
        user = create_document(db, "user", user_doc)
    except DuplicateKeyError:
        # a concurrent first login with the same provider id got there first
        user = db["user"].find_one({"oauth": user_doc.oauth, "oauth_id": user_doc.oauth_id})
    except PyMongoError as e:
        logger.exception("Inserting %s user %s failed", user_doc.oauth, user_doc.oauth_id)
        raise AppError.internal(KAKAO_REGISTER_FAILED) from e

    if user is None:
        raise AppError.internal(KAKAO_REGISTER_FAILED)
    return user


def edit_nickname(db: Database, user_id: str, nickname: str) -> Dict[str, Any]:
    user = db["user"].find_one_and_update(
        {"_id": to_obj_id(user_id)},
        {"$set": {"nickname": nickname, "updated_at": datetime.now(timezone.utc)}},
        projection={"password_hash": 0, "email": 0},
        return_document=ReturnDocument.AFTER,
    )
    if user is None:
        raise AppError.not_found(USER_NOT_FOUND)
    return sanitize(user)


def auth_validate(db: Database, user_id: str) -> Dict[str, Any]:
    user = db["user"].find_one({"_id": to_obj_id(user_id)}, {"nickname": 1, "role": 1, "thumbnail": 1})
    if user is None:
        raise AppError.not_found(USER_NOT_FOUND)
    return sanitize(user)


def refresh(db: Database, refresh_token: str) -> Dict[str, str]:
    """Mint a new access token from a refresh token whose user still exists."""
    claims = decode_token(refresh_token, REFRESH)
    user = db["user"].find_one({"_id": to_obj_id(claims["id"])}, {"nickname": 1, "role": 1})
    if user is None:
        raise AppError.unauthorized("Invalid or expired token")
    return {"access_token": create_access_token(token_payload(user))}


def delete_user(db: Database, user_id: str, unit_of_work=MongoUnitOfWork) -> None:
    """
    Delete a user and everything that references them, atomically.

    Domain errors (e.g. not found) propagate unchanged; any other failure
    is reported as a single rollback error.
    """
    try:
        with unit_of_work(db) as uow:
            _delete_user_cascade(uow, user_id)
    except AppError:
        raise
    except Exception as e:
        logger.exception("Deleting user %s failed, transaction rolled back", user_id)
        raise AppError.internal(DELETE_FAILED) from e

    logger.info("Deleted user %s", user_id)


def _delete_user_cascade(uow, user_id: str) -> None:
    db, session = uow.db, uow.session

    user = db["user"].find_one({"_id": to_obj_id(user_id)}, session=session)
    if user is None:
        raise AppError.not_found(USER_NOT_FOUND)
    uid = str(user["_id"])

    store = db["store"].find_one({"owner_id": uid}, session=session)
    if store is not None:
        store_id = str(store["_id"])
        db["comment"].delete_many({"store_id": store_id}, session=session)
        db["notification"].delete_many({"sender": store_id}, session=session)
        db["bookmark"].delete_many({"store_id": store_id}, session=session)
        db["store"].delete_one({"_id": store["_id"]}, session=session)

    db["bookmark"].delete_many({"user_id": uid}, session=session)
    db["notification"].update_many(
        {"recipients": uid},
        {"$pull": {"recipients": uid}},
        session=session,
    )
    db["comment"].delete_many({"author_id": uid}, session=session)
    db["user"].delete_one({"_id": user["_id"]}, session=session)
