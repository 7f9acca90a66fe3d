import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# --- Category ---

class CategoryResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    slug: str | None = None
    color: str | None = None
    color_active: str | None = None
    model_config = ConfigDict(from_attributes=True)


# --- Post ---

class PostBase(BaseModel):
    excerpt: str | None = None
    image: str | None = Field(None, max_length=500)
    category: str | None = Field(None, max_length=100)
    tags: list[str] | None = None
    is_published: bool | None = None
    is_featured: bool | None = None
    meta_title: str | None = Field(None, max_length=255)
    meta_description: str | None = None


class PostCreate(PostBase):
    header: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)


class PostUpdate(PostBase):
    header: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)


class PostResponse(BaseModel):
    id: str
    header: str
    content: str
    excerpt: str | None = None
    image: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    author_id: str
    author_email: str
    is_published: bool
    is_featured: bool
    views_count: int
    likes_count: int
    slug: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    reading_time: int
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None = None
    deleted: bool = False


# --- Pagination ---

class PaginationMeta(BaseModel):
    page: int
    size: int
    total: int
    total_pages: int = Field(alias="totalPages")
    model_config = ConfigDict(populate_by_name=True)


class PaginatedPosts(BaseModel):
    data: list[PostResponse]
    pagination: PaginationMeta


# --- User service ---

class _Credentials(BaseModel):
    email: str = Field(max_length=255)
    password: str

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, value: str) -> str:
        return value.strip().lower()


class UserCreate(_Credentials):
    confirm_password: str = Field(alias="confirmPassword")
    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email")
    @classmethod
    def _email_format(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("Invalid email format")
        return value

    @field_validator("password")
    @classmethod
    def _password_length(cls, value: str) -> str:
        if len(value) < 6:
            raise ValueError("Password must be at least 6 characters long")
        return value

    @model_validator(mode="after")
    def _passwords_match(self) -> "UserCreate":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class UserLogin(_Credentials):
    pass


class UserProfile(BaseModel):
    id: str
    email: str
    created_at: datetime


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserProfile


class UserEnvelope(BaseModel):
    user: UserProfile


# --- Logging service ---

class LogEntryCreate(BaseModel):
    """Free-form audit entry; known fields are typed, anything else is kept."""

    action: str | None = None
    level: str | None = None
    userId: str | None = None
    email: str | None = None
    timestamp: str | None = None
    model_config = ConfigDict(extra="allow")

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class LogResult(BaseModel):
    success: bool
    message: str
