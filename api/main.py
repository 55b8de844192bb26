"""
FastAPI main application for the Book Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth import get_access_token, get_admin_token, verify_api_key
from api.config import config as api_config
from api.models import (
    AddBookRequest, AddBookResponse, AdminLoginRequest, AdminLoginResponse,
    BookActionRequest, BookListResponse, BookResponse, CategoryListResponse,
    ErrorResponse, FavoritesResponse, HealthResponse, RecentResponse,
    SigninRequest, SigninResponse, SignupRequest, SignupResponse,
    SuccessResponse, UserListResponse, UserResponse
)
from catalog.database import MongoDBManager
from catalog.errors import CatalogError
from catalog.identity import IdentityProvider
from catalog.service import CatalogService
from catalog.storage import UrlSigner
from utilities.config import config

# Setup logging
logger = structlog.get_logger(__name__)

# Global services, set up by the lifespan hook
db_manager: MongoDBManager = None
catalog_service: CatalogService = None


def build_catalog_service(manager: MongoDBManager) -> CatalogService:
    """Wire the catalog service to MongoDB-backed stores."""
    identity = IdentityProvider(
        accounts=manager.identity_store(),
        secret_key=config.secret_key,
        algorithm=config.algorithm,
        access_token_expire_minutes=config.access_token_expire_minutes,
        min_password_length=config.min_password_length
    )
    signer = UrlSigner(config.secret_key, config.algorithm, config.public_base_url)
    return CatalogService(
        kv=manager.kv_store(),
        identity=identity,
        blobs=manager.blob_store(),
        signer=signer,
        admin_password=config.admin_password,
        admin_token_ttl_hours=config.admin_token_ttl_hours,
        email_domain=config.email_domain,
        signed_url_expire_seconds=config.signed_url_expire_seconds,
        recent_limit=config.recent_limit,
        profile_update_retries=config.profile_update_retries
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Book Catalog API")

    global db_manager, catalog_service
    try:
        db_manager = MongoDBManager(
            connection_url=config.mongodb_url,
            database_name=config.mongodb_database,
            kv_collection=config.kv_collection,
            identity_collection=config.identity_collection,
            blob_bucket=config.blob_bucket
        )
        await db_manager.connect()
        catalog_service = build_catalog_service(db_manager)
        logger.info("Catalog service initialized")

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    logger.info("Shutting down Book Catalog API")
    await db_manager.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description="""
    Public book catalog with per-user favorites and reading history.

    ## Authentication

    Every endpoint except `/health` and signed `/storage` links requires the
    shared client key in the Authorization header:

    ```
    Authorization: Bearer your_api_key_here
    ```

    User endpoints additionally take `X-Access-Token` (from `/auth/signin`),
    admin endpoints take `X-Admin-Token` (from `/admin/login`).
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
    expose_headers=api_config.cors_expose_headers,
    max_age=api_config.cors_max_age,
)

router = APIRouter(dependencies=[Depends(verify_api_key)])


def get_service() -> CatalogService:
    if not catalog_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Catalog service not available"
        )
    return catalog_service


def error_response(status_code: int, error: str, detail: Optional[str] = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail, status_code=status_code).model_dump(),
        headers=headers
    )


# Exception handlers
@app.exception_handler(CatalogError)
async def catalog_exception_handler(request: Request, exc: CatalogError):
    """Convert catalog errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error("Catalog operation failed", error=exc.message, path=request.url.path)
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400."""
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", detail=detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        detail=str(exc) if api_config.debug else None
    )


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unknown"
    try:
        if db_manager:
            health_info = await db_manager.health_check()
            db_status = health_info.get("status", "unknown")
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status
    )


# Signed asset downloads (the signed token is the credential)
@app.get("/storage/{name}", tags=["Storage"])
async def download_asset(name: str, token: str = Query(..., description="Signed download token")):
    """Download a stored PDF or cover image through a signed URL."""
    service = get_service()
    service.signer.verify(name, token)
    blob = await service.blobs.download(name)
    return Response(content=blob.data, media_type=blob.content_type)


# Auth endpoints
@router.post("/auth/signup", response_model=SignupResponse, tags=["Auth"])
async def signup(payload: SignupRequest):
    """Create an account; the generated login is returned with the password."""
    result = await get_service().signup(
        first_name=payload.first_name,
        last_name=payload.last_name,
        date_of_birth=payload.date_of_birth,
        country=payload.country,
        city=payload.city,
        about_me=payload.about_me,
        password=payload.password
    )
    return SignupResponse(login=result["login"], password=result["password"])


@router.post("/auth/signin", response_model=SigninResponse, tags=["Auth"])
async def signin(payload: SigninRequest):
    """Exchange login and password for an access token."""
    result = await get_service().signin(payload.login, payload.password)
    return SigninResponse(access_token=result["accessToken"], user=result["user"])


@router.get("/auth/me", response_model=UserResponse, tags=["Auth"])
async def get_me(access_token: Optional[str] = Depends(get_access_token)):
    """Profile of the signed-in user."""
    profile = await get_service().get_current_user(access_token)
    return UserResponse(user=profile)


# Admin endpoints
@router.post("/admin/login", response_model=AdminLoginResponse, tags=["Admin"])
async def admin_login(payload: AdminLoginRequest):
    token = await get_service().admin_login(payload.password)
    return AdminLoginResponse(token=token)


@router.post("/admin/logout", response_model=SuccessResponse, tags=["Admin"])
async def admin_logout(admin_token: Optional[str] = Depends(get_admin_token)):
    await get_service().revoke_admin(admin_token)
    return SuccessResponse()


@router.get("/admin/users", response_model=UserListResponse, tags=["Admin"])
async def list_users(admin_token: Optional[str] = Depends(get_admin_token)):
    users = await get_service().list_users(admin_token)
    return UserListResponse(users=users)


@router.post("/admin/books", response_model=AddBookResponse, tags=["Admin"])
async def add_book(payload: AddBookRequest, admin_token: Optional[str] = Depends(get_admin_token)):
    """
    Add a book. PDF and cover image are optional base64 data URLs; each is
    stored and linked from the record through a one-year signed URL.
    """
    book = await get_service().add_book(
        admin_token,
        title=payload.title,
        author=payload.author,
        description=payload.description,
        summary=payload.summary,
        category=payload.category,
        pdf_base64=payload.pdf_base64,
        cover_image_base64=payload.cover_image_base64
    )
    return AddBookResponse(book=book)


@router.delete("/admin/books/{book_id}", response_model=SuccessResponse, tags=["Admin"])
async def delete_book(book_id: str, admin_token: Optional[str] = Depends(get_admin_token)):
    await get_service().delete_book(admin_token, book_id)
    return SuccessResponse()


# Books endpoints
@router.get("/books", response_model=BookListResponse, tags=["Books"])
async def get_books(
    search: Optional[str] = Query(None, description="Match title or author"),
    category: Optional[str] = Query(None, description="Filter by category")
):
    """
    List books, newest first.

    - **search**: Case-insensitive substring of title or author
    - **category**: Exact category name
    """
    books = await get_service().get_books(search=search, category=category)
    return BookListResponse(books=books)


@router.get("/books/categories", response_model=CategoryListResponse, tags=["Books"])
async def get_categories():
    return CategoryListResponse(categories=CatalogService.categories())


@router.get("/books/{book_id}", response_model=BookResponse, tags=["Books"])
async def get_book(book_id: str):
    book = await get_service().get_book(book_id)
    return BookResponse(book=book)


# User actions
@router.post("/user/favorites", response_model=FavoritesResponse, tags=["User"])
async def add_favorite(payload: BookActionRequest, access_token: Optional[str] = Depends(get_access_token)):
    favorites = await get_service().add_to_favorites(access_token, payload.book_id)
    return FavoritesResponse(favorites=favorites)


@router.delete("/user/favorites/{book_id}", response_model=FavoritesResponse, tags=["User"])
async def remove_favorite(book_id: str, access_token: Optional[str] = Depends(get_access_token)):
    favorites = await get_service().remove_from_favorites(access_token, book_id)
    return FavoritesResponse(favorites=favorites)


@router.post("/user/recent", response_model=RecentResponse, tags=["User"])
async def add_recent(payload: BookActionRequest, access_token: Optional[str] = Depends(get_access_token)):
    recent = await get_service().add_to_recent(access_token, payload.book_id)
    return RecentResponse(recent=recent)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
