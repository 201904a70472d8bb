"""Tests for pydantic-settings configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from flagmark.config import DatabaseConfig, Settings, get_settings

if TYPE_CHECKING:
    from collections.abc import Iterator

_PREFIXES = ("DATABASE__", "APP__", "FLAGS__", "DEV__")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop any flagmark env vars from the developer's shell or .env."""
    for key in list(os.environ):
        if key.startswith(_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.usefixtures("clean_env")
class TestDefaults:
    """Settings work with no environment at all."""

    def test_database_defaults_to_sqlite(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.database.url.startswith("sqlite+aiosqlite://")

    def test_app_defaults(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.app.port == 8080
        assert s.app.default_document_id == 1
        assert s.app.seed_content_path is None
        assert s.app.log_dir == Path("logs")

    def test_flag_defaults(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.flags.check_overlap_on_select is True
        assert s.flags.refresh_seconds == 5.0

    def test_secret_not_in_repr(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert "dev-secret" not in repr(s.app)


@pytest.mark.usefixtures("clean_env")
class TestEnvironmentOverrides:
    """Nested settings use the double-underscore delimiter."""

    def test_database_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        url = "postgresql+asyncpg://user:pw@localhost/flagmark"
        monkeypatch.setenv("DATABASE__URL", url)
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.database.url == url

    def test_flags(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLAGS__CHECK_OVERLAP_ON_SELECT", "false")
        monkeypatch.setenv("FLAGS__REFRESH_SECONDS", "2.5")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.flags.check_overlap_on_select is False
        assert s.flags.refresh_seconds == 2.5

    def test_get_settings_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP__PORT", "9000")
        first = get_settings()
        monkeypatch.setenv("APP__PORT", "9001")
        assert get_settings() is first
        assert first.app.port == 9000


class TestDatabaseConfig:
    """URLs must name an async driver."""

    @pytest.mark.parametrize(
        "url", ["postgresql://localhost/flagmark", "sqlite:///flagmark.db"]
    )
    def test_sync_driver_rejected(self, url: str) -> None:
        with pytest.raises(ValidationError, match="async driver"):
            DatabaseConfig(url=url)

    def test_async_drivers_accepted(self) -> None:
        url = "sqlite+aiosqlite:///x.db"
        assert DatabaseConfig(url=url).url == url
