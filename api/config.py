"""
API configuration settings.
"""

from typing import List

from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Catalog API"
    api_version: str = "1.0.0"
    api_description: str = "Public book catalog with favorites, reading history and an admin panel"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Shared bearer credentials presented by the web client
    api_keys: str = ""  # Comma-separated list of valid API keys

    # CORS Settings
    cors_origins: list = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    cors_allow_headers: list = ["Content-Type", "Authorization", "X-Admin-Token", "X-Access-Token"]
    cors_expose_headers: list = ["Content-Length"]
    cors_max_age: int = 600

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    def valid_api_keys(self) -> List[str]:
        """Parse the comma-separated shared keys."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]


# Global config instance
config = APIConfig()
