"""
Error taxonomy for catalog operations.

Each error carries the HTTP status the API layer responds with, so handlers
can raise domain errors and leave the conversion to the exception handlers
registered in ``api.main``.
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for all catalog errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(CatalogError):
    """Missing, invalid or expired credential."""

    status_code = 401
    default_message = "Unauthorized"


class NotFound(CatalogError):
    """Requested book, profile or blob does not exist."""

    status_code = 404
    default_message = "Not found"


class ValidationError(CatalogError):
    """Input rejected by the identity provider or by payload decoding."""

    status_code = 400
    default_message = "Invalid input"


class UploadError(CatalogError):
    """Blob store write or signed URL issuance failed."""

    status_code = 500
    default_message = "Failed to upload file"


class InternalError(CatalogError):
    """Unexpected failure."""

    status_code = 500
    default_message = "Internal server error"
