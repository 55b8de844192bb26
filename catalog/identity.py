"""
Identity provider: password accounts and bearer access tokens.

Accounts are kept in their own key-value namespace:
``account:<id>`` holds the account and password hash, and ``email:<email>``
reserves an address for exactly one account.
"""

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import Field

from .errors import Unauthorized, ValidationError
from .models import CatalogRecord, now_ms
from .storage import KVStore

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthUser(CatalogRecord):
    """Account as exposed to callers, without the password hash."""
    id: str = Field(..., description="User id")
    email: str = Field(..., description="Account email")
    user_metadata: Dict[str, Any] = Field(default_factory=dict, description="Data supplied at signup")
    created_at: int = Field(default_factory=now_ms, description="Creation time in ms")


@dataclass
class Session:
    """Result of a successful password sign-in."""
    access_token: str
    user: AuthUser


class IdentityProvider:
    """Creates accounts, signs users in and validates access tokens."""

    def __init__(
        self,
        accounts: KVStore,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        min_password_length: int = 6
    ):
        self.accounts = accounts
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes
        self.min_password_length = min_password_length

    @staticmethod
    def _account_key(user_id: str) -> str:
        return f"account:{user_id}"

    @staticmethod
    def _email_key(email: str) -> str:
        return f"email:{email}"

    async def create_user(
        self,
        email: str,
        password: str,
        user_metadata: Optional[Dict[str, Any]] = None
    ) -> AuthUser:
        """
        Register a new password account.

        Args:
            email: Account email, unique across accounts
            password: Plaintext password
            user_metadata: Arbitrary data stored with the account

        Returns:
            The created account

        Raises:
            ValidationError: If the email is malformed or taken, or the password is too weak
        """
        email = email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Unable to validate email address: invalid format")
        if len(password or "") < self.min_password_length:
            raise ValidationError(
                f"Password should be at least {self.min_password_length} characters."
            )

        user = AuthUser(id=str(uuid.uuid4()), email=email, user_metadata=user_metadata or {})

        if not await self.accounts.insert(self._email_key(email), {"userId": user.id}):
            logger.warning("Signup with registered email", email=email)
            raise ValidationError("A user with this email address has already been registered")

        record = user.to_record()
        record["passwordHash"] = pwd_context.hash(password)
        try:
            await self.accounts.set(self._account_key(user.id), record)
        except Exception:
            await self.accounts.delete(self._email_key(email))
            raise

        logger.info("Account created", user_id=user.id, email=email)
        return user

    def create_access_token(self, user: AuthUser) -> str:
        claims = {
            "sub": user.id,
            "email": user.email,
            "exp": datetime.utcnow() + timedelta(minutes=self.access_token_expire_minutes),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """
        Exchange email and password for an access token.

        Raises:
            Unauthorized: If the account does not exist or the password is wrong
        """
        email = email.strip().lower()
        reservation = await self.accounts.get(self._email_key(email))
        record = None
        if reservation:
            record = await self.accounts.get(self._account_key(reservation["userId"]))

        if not record or not pwd_context.verify(password or "", record.get("passwordHash", "")):
            logger.warning("Sign in rejected", email=email)
            raise Unauthorized("Invalid login or password")

        user = AuthUser.model_validate(record)
        return Session(access_token=self.create_access_token(user), user=user)

    async def get_user(self, access_token: str) -> AuthUser:
        """
        Resolve the account an access token was issued to.

        Raises:
            Unauthorized: If the token is invalid or expired, or the account is gone
        """
        try:
            claims = jwt.decode(access_token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise Unauthorized("Access token has expired")
        except JWTError:
            logger.warning("Invalid access token", token=access_token[:10] + "...")
            raise Unauthorized("Invalid access token")

        user_id = claims.get("sub")
        record = await self.accounts.get(self._account_key(user_id)) if user_id else None
        if not record:
            raise Unauthorized("Invalid access token")

        return AuthUser.model_validate(record)
