"""
Configuration management using environment variables.
Handles storage, identity and catalog settings with validation and defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class CatalogConfig(BaseSettings):
    """
    Configuration class for catalog backend settings.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="book_catalog")
    kv_collection: str = Field(default="kv_store")
    identity_collection: str = Field(default="auth_users")
    blob_bucket: str = Field(default="books")

    # Identity Provider
    secret_key: str = Field(default="your-secret-key-change-in-production")
    algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)
    min_password_length: int = Field(default=6)
    email_domain: str = Field(default="booksite.local")

    # Admin Access
    admin_password: str = Field(default="7777")
    admin_token_ttl_hours: Optional[int] = Field(default=None)

    # Asset Storage
    signed_url_expire_seconds: int = Field(default=31536000)  # 1 year
    public_base_url: str = Field(default="http://localhost:8000")

    # Profile Lists
    recent_limit: int = Field(default=20)
    profile_update_retries: int = Field(default=5)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    @field_validator('access_token_expire_minutes')
    @classmethod
    def validate_token_expiry(cls, v):
        """Ensure access tokens expire within a day."""
        if v < 1 or v > 1440:
            raise ValueError('access_token_expire_minutes must be between 1 and 1440')
        return v

    @field_validator('recent_limit', 'profile_update_retries')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError('must be at least 1')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra fields from .env
    }

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def is_production(self) -> bool:
        return not self.debug


# Global configuration instance
config = CatalogConfig()
