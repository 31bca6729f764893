import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional, List

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, EmailStr, StringConstraints, field_validator
from pymongo.database import Database

import account_service
import config
import database
import kakao
import store_service
from errors import AppError
from schemas import GeoPoint, Store as StoreSchema
from security import get_current_user
from unit_of_work import MongoUnitOfWork

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("DATABASE_URL is not set; database-backed routes will fail")
    yield


# App and CORS
app = FastAPI(title="Store Review API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error formatting
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"msg": f"Missing or invalid request fields: {detail}"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"msg": "Internal server error"})


def get_db() -> Database:
    if database.db is None:
        raise AppError.internal("Database not configured")
    return database.db


def get_unit_of_work():
    return MongoUnitOfWork


# Request Models
Nickname = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=30)]

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    nickname: Nickname

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class KakaoLoginRequest(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: Optional[str] = None

class RefreshRequest(BaseModel):
    refresh_token: str

class NicknameRequest(BaseModel):
    nickname: Nickname

class CreateStoreRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    coordinates: List[float] = Field(..., min_length=2, max_length=2, description="[longitude, latitude]")
    category: str = Field(..., min_length=1, max_length=40)
    payment_methods: List[str] = Field(..., min_length=1)

    @field_validator("coordinates")
    @classmethod
    def check_coordinates(cls, value: List[float]) -> List[float]:
        lon, lat = value
        if not -180 <= lon <= 180:
            raise ValueError("longitude must be between -180 and 180")
        if not -90 <= lat <= 90:
            raise ValueError("latitude must be between -90 and 90")
        return value


# Auth Routes
@app.post("/auth/register", status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    result = account_service.register(db, str(payload.email), payload.password, payload.nickname)
    return {"msg": "ok", **result}

@app.get("/auth/check-email")
def check_email(email: EmailStr, db: Database = Depends(get_db)):
    return {"msg": "ok", "available": account_service.check_email(db, str(email))}

@app.post("/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    result = account_service.login(db, str(payload.email), payload.password)
    return {"msg": "ok", **result}

@app.post("/auth/kakao")
def kakao_login(payload: KakaoLoginRequest, db: Database = Depends(get_db)):
    kakao_token = kakao.exchange_code(payload.code, payload.redirect_uri)
    profile = kakao.fetch_profile(kakao_token)
    tokens = account_service.kakao_login(db, profile)
    return {"msg": "ok", **tokens}

@app.post("/auth/refresh")
def refresh(payload: RefreshRequest, db: Database = Depends(get_db)):
    return {"msg": "ok", **account_service.refresh(db, payload.refresh_token)}

@app.get("/auth/validate")
def auth_validate(current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"msg": "ok", "user": account_service.auth_validate(db, current_user["id"])}

@app.patch("/auth/nickname")
def edit_nickname(payload: NicknameRequest, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    user = account_service.edit_nickname(db, current_user["id"], payload.nickname)
    return {"msg": "ok", "user": user}

@app.delete("/auth/me")
def delete_account(
    current_user=Depends(get_current_user),
    db: Database = Depends(get_db),
    unit_of_work=Depends(get_unit_of_work),
):
    account_service.delete_user(db, current_user["id"], unit_of_work)
    return {"msg": "ok"}


# Store Routes
@app.get("/stores")
def list_stores(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    category: Optional[str] = None,
    name: Optional[str] = None,
    db: Database = Depends(get_db),
):
    if lat is None or lon is None:
        raise AppError.bad_request("lat and lon are required")
    stores = store_service.get_stores(db, lat, lon, category, name)
    return {"msg": "ok", "stores": stores}

@app.post("/stores", status_code=201)
def create_store(payload: CreateStoreRequest, current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    data = StoreSchema(
        owner_id=current_user["id"],
        name=payload.name,
        location=GeoPoint(coordinates=payload.coordinates),
        category=payload.category,
        payment_methods=payload.payment_methods,
    )
    result = store_service.post_store(db, data)
    return {"msg": "ok", **result}

@app.get("/stores/me")
def my_store(current_user=Depends(get_current_user), db: Database = Depends(get_db)):
    return {"msg": "ok", **store_service.get_store(db, current_user["id"])}

@app.delete("/stores/me")
def delete_my_store(
    current_user=Depends(get_current_user),
    db: Database = Depends(get_db),
    unit_of_work=Depends(get_unit_of_work),
):
    store_service.delete_store(db, current_user["id"], unit_of_work)
    return {"msg": "ok"}

@app.get("/stores/{store_id}")
def store_detail(store_id: str, db: Database = Depends(get_db)):
    return {"msg": "ok", **store_service.get_store_by_id(db, store_id)}


# Utility endpoints
@app.get("/")
def root():
    return {"msg": "Store Review API running"}

@app.get("/test")
def test_database():
    try:
        collections = database.db.list_collection_names() if database.db is not None else []
        return {"backend": "ok", "database": "ok" if database.db is not None else "missing", "collections": collections}
    except Exception as e:
        return {"backend": "ok", "database": f"error: {e}"}
