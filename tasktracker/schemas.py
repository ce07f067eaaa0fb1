"""Pydantic schemas for users, authentication, and tasks.

These classes define request and response models used by the FastAPI endpoints:
- UserCreate / UserOut
- Token / SessionOut
- TaskOut / TaskPage

JSON field names are camelCase (`createdAt`, `userId`, `pageSize`, ...); the
Python attributes stay snake_case and are populated from ORM objects.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------- Users ----------
class UserCreate(BaseModel):
    """Payload for registering a password account."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)


class UserOut(CamelModel):
    """Public representation of a user."""
    id: str
    name: Optional[str] = None
    email: EmailStr
    image: Optional[str] = None
    created_at: Optional[datetime] = None


# ---------- Auth ----------
class Token(BaseModel):
    """Bearer token returned after successful authentication."""
    access_token: str
    token_type: str = "bearer"


class SessionUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class SessionOut(BaseModel):
    """Current session; `user` is absent when not signed in."""
    user: Optional[SessionUser] = None


class ProviderOut(BaseModel):
    id: str
    name: str
    type: str


# ---------- Tasks ----------
class TaskOut(CamelModel):
    """Representation of a task returned by the API."""
    id: str
    title: str
    done: bool
    created_at: datetime
    user_id: str


# ---------- Pagination ----------
class TaskPage(CamelModel):
    """One pagination window of the caller's tasks."""
    items: list[TaskOut]
    page: int
    page_size: int
    total: int
    total_pages: int
