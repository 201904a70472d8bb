"""Shared pytest fixtures for flagmark tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from dotenv import load_dotenv

from flagmark.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

load_dotenv()


@pytest.fixture
def sqlite_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    """Point DATABASE__URL at a throwaway SQLite file for one test."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'flagmark.db'}"
    monkeypatch.setenv("DATABASE__URL", url)
    monkeypatch.setenv("APP__DEFAULT_DOCUMENT_ID", "1")
    monkeypatch.delenv("APP__SEED_CONTENT_PATH", raising=False)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db(sqlite_url: str) -> AsyncIterator[str]:
    """Initialised engine with the schema created; disposed afterwards."""
    from flagmark.db import close_db, create_schema, get_engine, init_db

    await init_db()
    await create_schema(get_engine())
    yield sqlite_url
    await close_db()
