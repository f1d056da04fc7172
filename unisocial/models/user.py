# unisocial/models/user.py

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from pydantic import BaseModel, ConfigDict, Field

from unisocial.db.base_class import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False, default="")
    hashed_password = Column(String(255), nullable=False)
    profile_picture = Column(String(255), default="")

    is_admin = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    # Updated by the realtime transport when a live connection closes
    last_seen = Column(DateTime(timezone=True), nullable=True)


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    name: str = ""
    profile_picture: str = ""


class UserRead(BaseModel):
    id: int
    username: str
    name: str
    profile_picture: Optional[str] = ""
    is_admin: bool
    created_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    """Peer display fields populated into relationship listings."""

    id: int
    username: str
    name: str
    profile_picture: Optional[str] = ""
    is_online: bool = False

    model_config = ConfigDict(from_attributes=True)
