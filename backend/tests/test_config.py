import pytest
import os
from unittest.mock import patch
from core.config import Settings

class TestSettings:
    """Test configuration settings"""

    @patch.dict(os.environ, {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    }, clear=True)
    def test_settings_default_values(self):
        """Test that settings have correct default values with only the database URL provided"""
        settings = Settings()
        assert settings.APP_NAME == "Markup Review Store"
        assert settings.DEBUG is False
        assert settings.DB_ECHO is False
        assert settings.INGEST_TIMEOUT_SECONDS == 30.0
        assert settings.INGEST_REJECT_DUPLICATE_ATTACHMENTS is True
        assert settings.DB_POOL_SIZE == 5

    def test_settings_from_env_vars(self):
        """Test that settings load from environment variables"""
        with patch.dict(os.environ, {
            "APP_NAME": "Test App",
            "DEBUG": "true",
            "INGEST_TIMEOUT_SECONDS": "2.5",
            "DB_POOL_SIZE": "12",
            "DATABASE_URL": "sqlite+aiosqlite:///:memory:"
        }):
            settings = Settings()
            assert settings.APP_NAME == "Test App"
            assert settings.DEBUG == True
            assert settings.INGEST_TIMEOUT_SECONDS == 2.5
            assert settings.DB_POOL_SIZE == 12

    def test_boolean_parsing_with_whitespace(self):
        """Test that boolean values with whitespace are parsed correctly"""
        with patch.dict(os.environ, {
            "DEBUG": "true ",
            "DB_ECHO": " false",
            "INGEST_REJECT_DUPLICATE_ATTACHMENTS": "false\r\n",
            "DATABASE_URL": "sqlite+aiosqlite:///:memory:"
        }):
            settings = Settings()
            assert settings.DEBUG == True
            assert settings.DB_ECHO == False
            assert settings.INGEST_REJECT_DUPLICATE_ATTACHMENTS == False

    @pytest.mark.parametrize("raw, expected", [
        ("http://localhost:3000", ["http://localhost:3000"]),
        ("http://a.test, http://b.test", ["http://a.test", "http://b.test"]),
        ("http://a.test,,", ["http://a.test"]),
        ("", []),
    ])
    def test_cors_origin_list(self, raw, expected):
        with patch.dict(os.environ, {"CORS_ORIGINS": raw}):
            assert Settings().cors_origin_list == expected

    def test_database_url_required_format(self):
        """Test database URL format"""
        settings = Settings()
        assert "+aiosqlite" in settings.DATABASE_URL or "+asyncpg" in settings.DATABASE_URL

    def test_config_class_settings(self):
        """Test that Config class has correct settings"""
        assert Settings.Config.env_file == [".env", "../.env"]
        assert Settings.Config.extra == "allow"
