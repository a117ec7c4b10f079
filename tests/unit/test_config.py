"""Unit tests for configuration module."""

from pathlib import Path

import pytest

from mailvault.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings()

        assert settings.db_path == Path("mailvault.sqlite3")
        assert settings.webhook_token is None
        assert settings.webhook_url is None
        assert settings.webhook_secret is None
        assert settings.default_page_size == 50
        assert settings.search_limit == 20
        assert settings.log_level == "INFO"
        assert settings.debug is False

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("MAILVAULT_DB_PATH", "/var/lib/mailvault/store.sqlite3")
        monkeypatch.setenv("MAILVAULT_WEBHOOK_TOKEN", "s3cret")
        monkeypatch.setenv("MAILVAULT_LOG_LEVEL", "DEBUG")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.db_path == Path("/var/lib/mailvault/store.sqlite3")
        assert settings.webhook_token == "s3cret"
        assert settings.log_level == "DEBUG"

        # Clean up
        get_settings.cache_clear()

    def test_page_size_must_be_positive(self) -> None:
        with pytest.raises(Exception):  # Pydantic ValidationError
            Settings(default_page_size=0)

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
