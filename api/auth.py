"""
Request authentication for the FastAPI API.

Three credentials are involved:
- the shared bearer key every client request carries in ``Authorization``
- a per-user access token in ``X-Access-Token``
- a per-admin token in ``X-Admin-Token``

Only the shared key is checked here; user and admin tokens are passed on to
the catalog service, which resolves them against its stores.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from api.config import config as api_config

logger = structlog.get_logger(__name__)

# Security schemes
security = HTTPBearer(auto_error=False)
access_token_header = APIKeyHeader(name="X-Access-Token", auto_error=False)
admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Verify the shared bearer key against the configured API keys.

    Args:
        credentials: HTTP authorization credentials

    Returns:
        API key if valid

    Raises:
        HTTPException: If the key is missing or not configured
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    api_key = credentials.credentials
    if api_key not in api_config.valid_api_keys():
        logger.warning("Invalid API key attempted", api_key=api_key[:10] + "...")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return api_key


async def get_access_token(token: Optional[str] = Security(access_token_header)) -> Optional[str]:
    """User access token from ``X-Access-Token``, if present."""
    return token


async def get_admin_token(token: Optional[str] = Security(admin_token_header)) -> Optional[str]:
    """Admin token from ``X-Admin-Token``, if present."""
    return token
