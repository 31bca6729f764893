"""
Runtime configuration for the Store Review API.

Values come from the environment (a local .env file is loaded first).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "store_review")

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _get_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
REFRESH_TOKEN_EXPIRE_DAYS = _get_env_int("REFRESH_TOKEN_EXPIRE_DAYS", 14)

# Kakao OAuth
KAKAO_REST_API_KEY = os.getenv("KAKAO_REST_API_KEY", "").strip()
KAKAO_CLIENT_SECRET = os.getenv("KAKAO_CLIENT_SECRET", "").strip()
KAKAO_REDIRECT_URI = os.getenv("KAKAO_REDIRECT_URI", "").strip()
KAKAO_TIMEOUT_SECONDS = _get_env_int("KAKAO_TIMEOUT_SECONDS", 5)

# Stores
STORE_SEARCH_RADIUS_METERS = _get_env_int("STORE_SEARCH_RADIUS_METERS", 1000)

# HTTP
CORS_ORIGINS = _get_env_list("CORS_ORIGINS", ["*"])
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
