"""
Kakao OAuth adapter.

Exchanges an authorization code for a Kakao access token, fetches the
user's profile, and normalizes the provider payload into an OAuthProfile
so the account service never reads Kakao-specific fields.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

import config
from errors import AppError

logger = logging.getLogger(__name__)

KAKAO_TOKEN_ENDPOINT = "https://kauth.kakao.com/oauth/token"
KAKAO_ME_ENDPOINT = "https://kapi.kakao.com/v2/user/me"

PROVIDER = "kakao"


@dataclass(frozen=True)
class OAuthProfile:
    provider: str
    provider_id: str
    nickname: str
    thumbnail: Optional[str] = None


def parse_kakao_profile(payload: Dict[str, Any]) -> OAuthProfile:
    """Normalize a /v2/user/me response body."""
    kakao_id = payload.get("id")
    if kakao_id is None:
        raise AppError.bad_request("Kakao profile is missing the user id")

    account = payload.get("kakao_account") or {}
    profile = account.get("profile") or {}
    properties = payload.get("properties") or {}

    nickname = profile.get("nickname") or properties.get("nickname") or f"kakao_{kakao_id}"
    thumbnail = profile.get("thumbnail_image_url") or properties.get("thumbnail_image")
    return OAuthProfile(
        provider=PROVIDER,
        provider_id=str(kakao_id),
        nickname=nickname,
        thumbnail=thumbnail,
    )


def exchange_code(code: str, redirect_uri: Optional[str] = None) -> str:
    """Trade an authorization code for a Kakao access token."""
    if not config.KAKAO_REST_API_KEY:
        raise AppError.internal("Kakao login is not configured")

    data = {
        "grant_type": "authorization_code",
        "client_id": config.KAKAO_REST_API_KEY,
        "redirect_uri": redirect_uri or config.KAKAO_REDIRECT_URI,
        "code": code,
    }
    if config.KAKAO_CLIENT_SECRET:
        data["client_secret"] = config.KAKAO_CLIENT_SECRET

    try:
        r = requests.post(KAKAO_TOKEN_ENDPOINT, data=data, timeout=config.KAKAO_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.exception("Kakao token request failed")
        raise AppError.internal("Could not reach Kakao") from e

    if r.status_code != 200:
        logger.warning("Kakao token exchange rejected: %s %s", r.status_code, r.text)
        raise AppError.unauthorized("Kakao authorization failed")

    access_token = r.json().get("access_token")
    if not access_token:
        raise AppError.unauthorized("Kakao authorization failed")
    return access_token


def fetch_profile(access_token: str) -> OAuthProfile:
    headers = {"Authorization": f"Bearer {access_token}"}
    try:
        r = requests.get(KAKAO_ME_ENDPOINT, headers=headers, timeout=config.KAKAO_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        logger.exception("Kakao profile request failed")
        raise AppError.internal("Could not reach Kakao") from e

    if r.status_code != 200:
        logger.warning("Kakao profile request rejected: %s %s", r.status_code, r.text)
        raise AppError.unauthorized("Kakao authorization failed")
    return parse_kakao_profile(r.json())
