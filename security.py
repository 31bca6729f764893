"""
Password hashing, token issuing and the bearer-token dependency.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

import config
from errors import AppError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


def verify_password_policy(password: str) -> None:
    # 8-64 chars, at least one letter and one digit
    if not (8 <= len(password) <= 64):
        raise AppError.bad_request("Password must be 8-64 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise AppError.bad_request("Password must include at least one letter")
    if not re.search(r"[0-9]", password):
        raise AppError.bad_request("Password must include at least one digit")


def hash_password(password: str) -> str:
    verify_password_policy(password)
    return pwd_context.hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def token_payload(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": str(user["_id"]), "nickname": user.get("nickname"), "role": user.get("role", "user")}


def _encode(payload: Dict[str, Any], token_type: str, secret: str, expires_delta: timedelta) -> str:
    to_encode = payload.copy()
    to_encode.update({"type": token_type, "exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=config.JWT_ALGORITHM)


def create_access_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        payload,
        ACCESS,
        config.JWT_SECRET,
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(payload: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        payload,
        REFRESH,
        config.JWT_REFRESH_SECRET,
        expires_delta or timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def issue_token_pair(user: Dict[str, Any]) -> Dict[str, str]:
    payload = token_payload(user)
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
    }


def decode_token(token: str, token_type: str = ACCESS) -> Dict[str, Any]:
    secret = config.JWT_SECRET if token_type == ACCESS else config.JWT_REFRESH_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise AppError.unauthorized("Invalid or expired token")
    if payload.get("type") != token_type or not payload.get("id"):
        raise AppError.unauthorized("Invalid or expired token")
    return payload


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """Identity claims of the bearer token: {id, nickname, role}."""
    if not token:
        raise AppError.unauthorized("Missing authentication credentials")
    payload = decode_token(token, ACCESS)
    return {"id": payload["id"], "nickname": payload.get("nickname"), "role": payload.get("role")}
