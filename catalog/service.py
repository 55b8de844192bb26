"""
Catalog service: request-level operations of the book catalog.

Every public coroutine is one API operation. Callers are identified either
by a user access token (validated by the identity provider) or by an admin
token minted by ``admin_login``. Profile mutations are read-modify-write
cycles guarded by the key-value store's per-record version, retried on
conflict, so concurrent updates for the same user are never lost.
"""

import base64
import binascii
import hmac
import re
import secrets
from typing import Any, Callable, Dict, List, Optional

import structlog

from .errors import InternalError, NotFound, Unauthorized, UploadError, ValidationError
from .identity import IdentityProvider
from .models import (
    ALL_CATEGORIES, BOOK_PREFIX, USER_PREFIX,
    AdminTokenRecord, Book, BookCategory, UserProfile,
    admin_token_key, book_key, now_ms, user_key
)
from .storage import BlobStore, KVStore, UrlSigner

logger = structlog.get_logger(__name__)

IMAGE_MIME_PATTERN = re.compile(r"data:image/(\w+);")


def add_unique(items: List[str], item: str) -> List[str]:
    """Append ``item`` unless already present."""
    if item in items:
        return list(items)
    return list(items) + [item]


def remove_item(items: List[str], item: str) -> List[str]:
    """Drop every occurrence of ``item``."""
    return [existing for existing in items if existing != item]


def move_to_front(items: List[str], item: str, limit: int) -> List[str]:
    """
    Insert ``item`` at index 0, dropping any earlier occurrence, and keep at
    most ``limit`` entries.
    """
    return ([item] + remove_item(items, item))[:limit]


def decode_data_url(payload: str) -> bytes:
    """Decode a base64 data URL, or a bare base64 string."""
    _, _, body = payload.partition(",")
    try:
        return base64.b64decode(body or payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 file payload")


def image_extension(payload: str) -> str:
    match = IMAGE_MIME_PATTERN.search(payload)
    return match.group(1) if match else "jpg"


class CatalogService:
    """Operations behind the catalog HTTP API."""

    def __init__(
        self,
        kv: KVStore,
        identity: IdentityProvider,
        blobs: BlobStore,
        signer: UrlSigner,
        admin_password: str = "7777",
        admin_token_ttl_hours: Optional[int] = None,
        email_domain: str = "booksite.local",
        signed_url_expire_seconds: int = 31536000,
        recent_limit: int = 20,
        profile_update_retries: int = 5
    ):
        self.kv = kv
        self.identity = identity
        self.blobs = blobs
        self.signer = signer
        self.admin_password = admin_password
        self.admin_token_ttl_hours = admin_token_ttl_hours
        self.email_domain = email_domain
        self.signed_url_expire_seconds = signed_url_expire_seconds
        self.recent_limit = recent_limit
        self.profile_update_retries = profile_update_retries

    # -------------------- Identity & session --------------------

    def _email_for(self, login: str) -> str:
        return f"{login}@{self.email_domain}"

    async def signup(
        self,
        first_name: str,
        last_name: str,
        date_of_birth: str,
        country: str,
        city: str,
        about_me: str,
        password: str
    ) -> Dict[str, str]:
        """
        Create an account and its profile.

        The login is generated from the lower-cased first name and the current
        time in milliseconds. The plaintext password is handed back so the
        client can sign in right away.

        Raises:
            ValidationError: If the identity provider rejects the input
        """
        login = f"{first_name.lower()}_{now_ms()}"
        user = await self.identity.create_user(
            email=self._email_for(login),
            password=password,
            user_metadata={
                "login": login,
                "firstName": first_name,
                "lastName": last_name,
                "dateOfBirth": date_of_birth,
                "country": country,
                "city": city,
                "aboutMe": about_me,
            }
        )

        profile = UserProfile(
            id=user.id,
            login=login,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=date_of_birth,
            country=country,
            city=city,
            about_me=about_me,
        )
        await self.kv.set(user_key(user.id), profile.to_record())
        logger.info("User profile created", user_id=user.id, login=login)

        return {"login": login, "password": password}

    async def signin(self, login: str, password: str) -> Dict[str, Any]:
        session = await self.identity.sign_in_with_password(self._email_for(login), password)
        logger.info("User signed in", user_id=session.user.id)
        return {"accessToken": session.access_token, "user": session.user.to_record()}

    async def _resolve_user_id(self, access_token: Optional[str]) -> str:
        if not access_token:
            raise Unauthorized()
        user = await self.identity.get_user(access_token)
        return user.id

    async def get_current_user(self, access_token: Optional[str]) -> Dict[str, Any]:
        """
        Return the profile of the caller.

        Raises:
            Unauthorized: If the access token is missing, invalid or expired
            NotFound: If the account has no profile record
        """
        user_id = await self._resolve_user_id(access_token)
        profile = await self.kv.get(user_key(user_id))
        if not profile:
            logger.error("Profile not found for user", user_id=user_id)
            raise NotFound("User profile not found")
        return profile

    # -------------------- Admin authorization --------------------

    async def admin_login(self, password: Optional[str]) -> str:
        """
        Mint an admin token if ``password`` matches the shared admin secret.

        Raises:
            Unauthorized: On password mismatch; no token is recorded
        """
        if not hmac.compare_digest((password or "").encode(), self.admin_password.encode()):
            logger.warning("Admin login rejected")
            raise Unauthorized("Invalid password")

        issued_at = now_ms()
        token = f"admin_{issued_at}_{secrets.token_urlsafe(16)}"
        await self.kv.set(admin_token_key(token), AdminTokenRecord(created_at=issued_at).to_record())
        logger.info("Admin token issued", token=token[:10] + "...")
        return token

    async def verify_admin(self, token: Optional[str]) -> bool:
        if not token:
            return False
        data = await self.kv.get(admin_token_key(token))
        if not data:
            return False

        record = AdminTokenRecord.model_validate(data)
        if record.valid is not True:
            return False
        if self.admin_token_ttl_hours is not None:
            age_ms = now_ms() - record.created_at
            if age_ms > self.admin_token_ttl_hours * 3600 * 1000:
                logger.info("Admin token expired", token=token[:10] + "...")
                return False
        return True

    async def _require_admin(self, token: Optional[str]) -> None:
        if not await self.verify_admin(token):
            raise Unauthorized()

    async def revoke_admin(self, token: Optional[str]) -> None:
        """Invalidate an admin token (admin logout)."""
        await self._require_admin(token)
        data = await self.kv.get(admin_token_key(token))
        record = AdminTokenRecord.model_validate(data)
        record.valid = False
        await self.kv.set(admin_token_key(token), record.to_record())
        logger.info("Admin token revoked", token=token[:10] + "...")

    async def list_users(self, admin_token: Optional[str]) -> List[Dict[str, Any]]:
        await self._require_admin(admin_token)
        return await self.kv.get_by_prefix(USER_PREFIX)

    # -------------------- Favorites / recent --------------------

    async def _update_profile(
        self,
        access_token: Optional[str],
        field: str,
        update: Callable[[List[str]], List[str]]
    ) -> List[str]:
        """
        Apply ``update`` to one list field of the caller's profile.

        The write only lands if the profile was not changed since it was read;
        otherwise the cycle restarts from a fresh read.
        """
        user_id = await self._resolve_user_id(access_token)
        key = user_key(user_id)

        for attempt in range(1, self.profile_update_retries + 1):
            entry = await self.kv.get_entry(key)
            if not entry:
                raise NotFound("User profile not found")

            profile = dict(entry.value)
            current = profile.get(field) or []
            updated = update(current)
            if updated == current:
                return current

            profile[field] = updated
            if await self.kv.compare_and_set(key, profile, entry.version):
                logger.info("Profile updated", user_id=user_id, field=field, attempt=attempt)
                return updated

        logger.error("Profile update kept conflicting", user_id=user_id, field=field)
        raise InternalError("Profile was modified concurrently, please retry")

    async def add_to_favorites(self, access_token: Optional[str], book_id: str) -> List[str]:
        return await self._update_profile(
            access_token, "favorites", lambda items: add_unique(items, book_id)
        )

    async def remove_from_favorites(self, access_token: Optional[str], book_id: str) -> List[str]:
        return await self._update_profile(
            access_token, "favorites", lambda items: remove_item(items, book_id)
        )

    async def add_to_recent(self, access_token: Optional[str], book_id: str) -> List[str]:
        return await self._update_profile(
            access_token, "recent", lambda items: move_to_front(items, book_id, self.recent_limit)
        )

    # -------------------- Books --------------------

    async def _store_asset(
        self, name: str, data: bytes, content_type: str, label: str, uploaded: List[str]
    ) -> str:
        try:
            await self.blobs.upload(name, data, content_type, upsert=True)
            uploaded.append(name)
            return self.signer.create_signed_url(name, self.signed_url_expire_seconds)
        except Exception as e:
            logger.error(f"Error uploading {label}", blob=name, error=str(e))
            raise UploadError(f"Failed to upload {label}")

    async def add_book(
        self,
        admin_token: Optional[str],
        title: str,
        author: str,
        description: str,
        summary: str,
        category: BookCategory,
        pdf_base64: Optional[str] = None,
        cover_image_base64: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a book record, uploading its PDF and cover image if supplied.

        Assets are uploaded first; if any later step fails the blobs already
        uploaded for this book are removed before the error propagates.

        Raises:
            Unauthorized: If the admin token is not valid
            ValidationError: If a payload is not valid base64
            UploadError: If storing an asset fails
        """
        await self._require_admin(admin_token)

        created_at = now_ms()
        book_id = f"book_{created_at}"
        pdf_bytes = decode_data_url(pdf_base64) if pdf_base64 else None
        cover_bytes = decode_data_url(cover_image_base64) if cover_image_base64 else None

        uploaded: List[str] = []
        pdf_url = None
        cover_url = None
        cover_path = None
        try:
            if pdf_bytes is not None:
                pdf_name = f"{book_id}.pdf"
                pdf_url = await self._store_asset(
                    pdf_name, pdf_bytes, "application/pdf", "PDF", uploaded
                )

            if cover_bytes is not None:
                ext = image_extension(cover_image_base64)
                cover_path = f"{book_id}_cover.{ext}"
                cover_url = await self._store_asset(
                    cover_path, cover_bytes, f"image/{ext}", "cover image", uploaded
                )

            book = Book(
                id=book_id,
                title=title,
                author=author,
                description=description,
                summary=summary,
                category=category,
                pdf_url=pdf_url,
                cover_image_url=cover_url,
                cover_image_path=cover_path,
                created_at=created_at,
            )
            record = book.to_record()
            await self.kv.set(book_key(book_id), record)

        except Exception:
            if uploaded:
                logger.warning("Removing assets of failed book", book_id=book_id, blobs=uploaded)
                try:
                    await self.blobs.remove(uploaded)
                except Exception as e:
                    logger.error("Error removing assets of failed book", book_id=book_id, error=str(e))
            raise

        logger.info("Book added", book_id=book_id, title=title)
        return record

    async def delete_book(self, admin_token: Optional[str], book_id: str) -> None:
        """Delete a book and its stored assets; unknown ids are ignored."""
        await self._require_admin(admin_token)

        record = await self.kv.get(book_key(book_id))
        if record:
            assets = []
            if record.get("pdfUrl"):
                assets.append(f"{book_id}.pdf")
            if record.get("coverImagePath"):
                assets.append(record["coverImagePath"])
            if assets:
                await self.blobs.remove(assets)

        await self.kv.delete(book_key(book_id))
        logger.info("Book deleted", book_id=book_id, existed=bool(record))

    async def get_books(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List books, newest first.

        Args:
            search: Case-insensitive substring matched against title or author
            category: Exact category; empty or the "all" pseudo-category lists every book
        """
        books = await self.kv.get_by_prefix(BOOK_PREFIX)

        if search:
            needle = search.lower()
            books = [
                book for book in books
                if needle in book.get("title", "").lower() or needle in book.get("author", "").lower()
            ]
        if category and category != ALL_CATEGORIES:
            books = [book for book in books if book.get("category") == category]

        return sorted(books, key=lambda book: book.get("createdAt", 0), reverse=True)

    async def get_book(self, book_id: str) -> Dict[str, Any]:
        book = await self.kv.get(book_key(book_id))
        if not book:
            raise NotFound("Book not found")
        return book

    @staticmethod
    def categories() -> List[str]:
        return [category.value for category in BookCategory]
