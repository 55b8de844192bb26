"""
Pydantic models for catalog records.

Records are stored and returned with camelCase keys, the layout the web
client reads; Python code uses the snake_case attribute names.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


USER_PREFIX = "user:"
BOOK_PREFIX = "book:"
ADMIN_TOKEN_PREFIX = "admin_token:"


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def user_key(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def book_key(book_id: str) -> str:
    return f"{BOOK_PREFIX}{book_id}"


def admin_token_key(token: str) -> str:
    return f"{ADMIN_TOKEN_PREFIX}{token}"


class BookCategory(str, Enum):
    """Closed set of catalog categories."""
    NOVEL = "Роман"
    SCIENCE_FICTION = "Фантастика"
    FANTASY = "Фэнтези"
    DETECTIVE = "Детектив"
    ROMANCE = "Любовный роман"
    ADVENTURE = "Приключения"
    POPULAR_SCIENCE = "Научно-популярная литература"
    SELF_DEVELOPMENT = "Саморазвитие"


# Pseudo-category used by the catalog page to disable the category filter
ALL_CATEGORIES = "Все"


class CatalogRecord(BaseModel):
    """Base model for records kept in the key-value store."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the stored/wire layout."""
        return self.model_dump(by_alias=True, mode="json")


class UserProfile(CatalogRecord):
    """Profile created at signup and mutated by favorites/recent actions."""
    id: str = Field(..., description="Identity provider user id")
    login: str = Field(..., description="Generated login, firstname_timestamp")
    first_name: str = Field(..., description="First name")
    last_name: str = Field("", description="Last name")
    date_of_birth: str = Field("", description="Date of birth")
    country: str = Field("", description="Country")
    city: str = Field("", description="City")
    about_me: str = Field("", description="Free-text bio")
    favorites: List[str] = Field(default_factory=list, description="Favorite book ids")
    recent: List[str] = Field(default_factory=list, description="Recently viewed book ids, newest first")


class Book(CatalogRecord):
    """Catalog book record."""
    id: str = Field(..., description="Book identifier, book_<timestamp>")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    description: str = Field("", description="Book description")
    summary: str = Field("", description="Short summary")
    category: BookCategory = Field(..., description="Book category")
    pdf_url: Optional[str] = Field(None, description="Signed PDF download URL")
    cover_image_url: Optional[str] = Field(None, description="Signed cover image URL")
    cover_image_path: Optional[str] = Field(None, description="Blob name of the cover image")
    created_at: int = Field(default_factory=now_ms, description="Creation time in ms")


class AdminTokenRecord(CatalogRecord):
    """Validity record for an issued admin token."""
    valid: bool = Field(True, description="Whether the token is accepted")
    created_at: int = Field(default_factory=now_ms, description="Issue time in ms")
