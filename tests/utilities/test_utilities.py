"""
Tests for configuration and logging setup.
"""

import logging

import pytest
import structlog
from pydantic import ValidationError

from utilities.config import CatalogConfig
from utilities.logger import get_logger, setup_logging


class TestCatalogConfig:
    """Test cases for CatalogConfig."""

    def test_defaults(self):
        config = CatalogConfig(_env_file=None)

        assert config.admin_password == "7777"
        assert config.recent_limit == 20
        assert config.signed_url_expire_seconds == 31536000
        assert config.admin_token_ttl_hours is None
        assert config.get_log_file_path() is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ADMIN_PASSWORD", "s3cret")
        monkeypatch.setenv("RECENT_LIMIT", "5")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = CatalogConfig(_env_file=None)

        assert config.admin_password == "s3cret"
        assert config.recent_limit == 5
        assert config.log_level == "DEBUG"

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            CatalogConfig(_env_file=None, log_format="xml")

    def test_invalid_recent_limit(self):
        with pytest.raises(ValidationError):
            CatalogConfig(_env_file=None, recent_limit=0)


class TestLogging:
    """Test cases for logging setup."""

    def test_setup_logging_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "api.log"

        setup_logging(log_level="INFO", log_format="json", log_file=str(log_file))
        get_logger("tests").info("Book added", book_id="book_1")

        assert log_file.exists()
        root = logging.getLogger()
        for handler in list(root.handlers):
            if isinstance(handler, logging.FileHandler):
                handler.close()
                root.removeHandler(handler)
        structlog.reset_defaults()
