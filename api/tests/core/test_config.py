"""Unit tests for core.config module.

Tests cover:
- Settings model_validator database check
- should_apply_migrations defaulting to debug
- allowed_origins computed property with deduplication
- get_settings / clear_settings_cache lru_cache behavior
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings

DB_URL = "postgresql+asyncpg://localhost/test"


@pytest.fixture(autouse=True)
def _clear_settings():
    """Clear lru_cache between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.mark.unit
class TestSettingsValidation:
    def test_requires_database_url(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(database_url="")

    def test_is_sqlite(self):
        assert Settings(database_url="sqlite+aiosqlite:///:memory:").is_sqlite is True
        assert Settings(database_url=DB_URL).is_sqlite is False

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///:memory:", True),
            ("sqlite+aiosqlite://", True),
            ("sqlite+aiosqlite:///./devhabit.db", False),
            (DB_URL, False),
        ],
    )
    def test_is_sqlite_memory(self, url, expected):
        assert Settings(database_url=url).is_sqlite_memory is expected

    def test_settings_are_frozen(self):
        settings = Settings(database_url=DB_URL)
        with pytest.raises(ValidationError):
            settings.debug = True  # type: ignore[misc]


@pytest.mark.unit
class TestShouldApplyMigrations:
    @pytest.mark.parametrize(
        ("debug", "apply_migrations", "expected"),
        [
            (True, None, True),
            (False, None, False),
            (True, False, False),
            (False, True, True),
        ],
    )
    def test_resolution(self, debug, apply_migrations, expected):
        settings = Settings(
            database_url=DB_URL, debug=debug, apply_migrations=apply_migrations
        )
        assert settings.should_apply_migrations is expected


@pytest.mark.unit
class TestDerivedSettings:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (
                "postgresql+asyncpg://user:secret@db:5432/devhabit",
                "postgresql+psycopg2://user:secret@db:5432/devhabit",
            ),
            ("sqlite+aiosqlite:///./devhabit.db", "sqlite:///./devhabit.db"),
            ("postgresql://localhost/devhabit", "postgresql://localhost/devhabit"),
        ],
    )
    def test_sync_database_url(self, url, expected):
        assert Settings(database_url=url).sync_database_url == expected

    @pytest.mark.parametrize(
        ("log_format", "otlp_endpoint", "expected"),
        [
            ("auto", "", False),
            ("auto", "http://localhost:4317", True),
            ("json", "", True),
            ("console", "http://localhost:4317", False),
        ],
    )
    def test_json_logs(self, log_format, otlp_endpoint, expected):
        settings = Settings(
            database_url=DB_URL, log_format=log_format, otlp_endpoint=otlp_endpoint
        )
        assert settings.json_logs is expected

    def test_docs_follow_debug(self):
        assert Settings(database_url=DB_URL, debug=True).docs_enabled is True
        assert Settings(database_url=DB_URL, debug=False).docs_enabled is False

    def test_rejects_unknown_log_format(self):
        with pytest.raises(ValidationError):
            Settings(database_url=DB_URL, log_format="xml")


@pytest.mark.unit
class TestAllowedOrigins:
    def test_empty_in_production_without_config(self):
        settings = Settings(database_url=DB_URL, debug=False, cors_allowed_origins="")
        assert settings.allowed_origins == []

    def test_debug_adds_localhost(self):
        settings = Settings(database_url=DB_URL, debug=True)
        assert "http://localhost:5173" in settings.allowed_origins

    def test_parses_and_deduplicates(self):
        settings = Settings(
            database_url=DB_URL,
            debug=True,
            cors_allowed_origins=" https://app.example.com, http://localhost:5173,,",
        )
        assert settings.allowed_origins == [
            "http://localhost:3000",
            "http://localhost:5173",
            "https://app.example.com",
        ]


@pytest.mark.unit
class TestGetSettings:
    def test_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache_creates_new_instance(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("DB_ECHO", "true")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.db_echo is True
