"""
Database Schemas for the Store Review Platform

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (User -> "user").

We will use these collections:
- user: local and OAuth accounts
- store: stores registered by their owners (one store per owner)
- comment: reviews left on a store
- bookmark: stores saved by a user
- notification: messages a store sends to a set of users

References between collections hold the hex string of the referenced _id.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, Literal, List

Role = Literal["admin", "user"]
OAuthProvider = Literal["local", "kakao"]


class User(BaseModel):
    email: Optional[EmailStr] = Field(None, description="Login email (unique), absent for OAuth accounts")
    password_hash: Optional[str] = Field(None, description="BCrypt hash of password, absent for OAuth accounts")
    nickname: str = Field(..., min_length=1, max_length=30)
    role: Role = Field("user")
    oauth: OAuthProvider = Field("local")
    oauth_id: Optional[str] = Field(None, description="Identity provider subject id")
    thumbnail: Optional[str] = Field(None, description="Avatar image URL")


class GeoPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., min_length=2, max_length=2, description="[longitude, latitude]")


class Store(BaseModel):
    owner_id: str = Field(..., description="Reference to user _id (owner)")
    name: str = Field(..., min_length=1, max_length=120)
    location: GeoPoint
    category: str = Field(..., min_length=1, max_length=40)
    payment_methods: List[str] = Field(..., min_length=1)


class Comment(BaseModel):
    store_id: str
    author_id: str
    content: str = Field(..., min_length=1, max_length=1000)


class Bookmark(BaseModel):
    user_id: str
    store_id: str


class Notification(BaseModel):
    sender: str = Field(..., description="Reference to the sending store _id")
    recipients: List[str] = Field(default_factory=list, description="User _ids")
    message: str
