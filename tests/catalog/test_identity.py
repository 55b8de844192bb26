"""
Unit tests for the identity provider.
"""

from datetime import datetime, timedelta

import pytest
from jose import jwt

from catalog.errors import Unauthorized, ValidationError

from conftest import TEST_SECRET


class TestIdentityProvider:
    """Test cases for IdentityProvider."""

    @pytest.mark.asyncio
    async def test_create_user_stores_hashed_password(self, identity_provider):
        user = await identity_provider.create_user(
            "anna_1@booksite.local", "secret123", {"login": "anna_1"}
        )

        record = await identity_provider.accounts.get(f"account:{user.id}")
        assert record["email"] == "anna_1@booksite.local"
        assert record["userMetadata"] == {"login": "anna_1"}
        assert record["passwordHash"] != "secret123"
        assert "passwordHash" not in user.to_record()

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, identity_provider):
        with pytest.raises(ValidationError) as exc_info:
            await identity_provider.create_user("anna_1@booksite.local", "12345")

        assert exc_info.value.message == "Password should be at least 6 characters."

    @pytest.mark.asyncio
    async def test_malformed_email_rejected(self, identity_provider):
        with pytest.raises(ValidationError):
            await identity_provider.create_user("not an email", "secret123")

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, identity_provider):
        await identity_provider.create_user("anna_1@booksite.local", "secret123")

        with pytest.raises(ValidationError) as exc_info:
            await identity_provider.create_user("ANNA_1@booksite.local", "other-secret")

        assert "already been registered" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_sign_in_and_resolve_token(self, identity_provider):
        user = await identity_provider.create_user("anna_1@booksite.local", "secret123")

        session = await identity_provider.sign_in_with_password("anna_1@booksite.local", "secret123")
        resolved = await identity_provider.get_user(session.access_token)

        assert session.user.id == user.id
        assert resolved.id == user.id
        assert resolved.email == "anna_1@booksite.local"

    @pytest.mark.asyncio
    async def test_sign_in_wrong_password(self, identity_provider):
        await identity_provider.create_user("anna_1@booksite.local", "secret123")

        with pytest.raises(Unauthorized) as exc_info:
            await identity_provider.sign_in_with_password("anna_1@booksite.local", "secret124")

        assert exc_info.value.message == "Invalid login or password"

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, identity_provider):
        user = await identity_provider.create_user("anna_1@booksite.local", "secret123")
        expired = jwt.encode(
            {"sub": user.id, "exp": datetime.utcnow() - timedelta(minutes=1)},
            TEST_SECRET,
            algorithm="HS256"
        )

        with pytest.raises(Unauthorized) as exc_info:
            await identity_provider.get_user(expired)

        assert exc_info.value.message == "Access token has expired"

    @pytest.mark.asyncio
    async def test_token_signed_with_other_key_rejected(self, identity_provider):
        user = await identity_provider.create_user("anna_1@booksite.local", "secret123")
        forged = jwt.encode(
            {"sub": user.id, "exp": datetime.utcnow() + timedelta(minutes=5)},
            "another-secret",
            algorithm="HS256"
        )

        with pytest.raises(Unauthorized):
            await identity_provider.get_user(forged)

    @pytest.mark.asyncio
    async def test_token_for_deleted_account_rejected(self, identity_provider):
        user = await identity_provider.create_user("anna_1@booksite.local", "secret123")
        token = identity_provider.create_access_token(user)

        await identity_provider.accounts.delete(f"account:{user.id}")

        with pytest.raises(Unauthorized):
            await identity_provider.get_user(token)
