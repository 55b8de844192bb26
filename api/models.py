"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from catalog.models import BookCategory


class CamelModel(BaseModel):
    """Request/response model with camelCase field names on the wire."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class SignupRequest(CamelModel):
    """Signup form."""
    first_name: str = Field(..., min_length=1, description="First name")
    last_name: str = Field("", description="Last name")
    date_of_birth: str = Field("", description="Date of birth")
    country: str = Field("", description="Country")
    city: str = Field("", description="City")
    about_me: str = Field("", description="Free-text bio")
    password: str = Field(..., description="Password")


class SignupResponse(CamelModel):
    success: bool = True
    login: str = Field(..., description="Generated login")
    password: str = Field(..., description="Password to sign in with")
    message: str = "User created successfully"


class SigninRequest(CamelModel):
    login: str = Field(..., description="Login returned at signup")
    password: str = Field(..., description="Password")


class SigninResponse(CamelModel):
    success: bool = True
    access_token: str = Field(..., description="Bearer access token for X-Access-Token")
    user: Dict[str, Any] = Field(..., description="Identity provider account")


class AdminLoginRequest(CamelModel):
    password: str = Field(..., description="Admin password")


class AdminLoginResponse(CamelModel):
    success: bool = True
    token: str = Field(..., description="Admin token for X-Admin-Token")


class AddBookRequest(CamelModel):
    """Admin book upload form; files arrive as base64 data URLs."""
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    description: str = Field(..., description="Book description")
    summary: str = Field(..., description="Short summary")
    category: BookCategory = Field(..., description="Book category")
    pdf_base64: Optional[str] = Field(None, description="PDF as a data URL")
    cover_image_base64: Optional[str] = Field(None, description="Cover image as a data URL")


class BookActionRequest(CamelModel):
    book_id: str = Field(..., min_length=1, description="Book identifier")


class SuccessResponse(BaseModel):
    success: bool = True


class UserResponse(BaseModel):
    user: Dict[str, Any] = Field(..., description="User profile")


class UserListResponse(BaseModel):
    users: List[Dict[str, Any]] = Field(..., description="User profiles")


class BookResponse(BaseModel):
    book: Dict[str, Any] = Field(..., description="Book record")


class AddBookResponse(BookResponse):
    success: bool = True


class BookListResponse(BaseModel):
    books: List[Dict[str, Any]] = Field(..., description="Book records, newest first")


class CategoryListResponse(BaseModel):
    categories: List[str] = Field(..., description="Available categories")


class FavoritesResponse(BaseModel):
    success: bool = True
    favorites: List[str] = Field(..., description="Favorite book ids")


class RecentResponse(BaseModel):
    success: bool = True
    recent: List[str] = Field(..., description="Recently viewed book ids, newest first")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
