"""Database bootstrap and schema management for flagmark.

Schema is created directly from SQLModel metadata; the two tables have no
migration history to manage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlmodel import SQLModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_expected_tables() -> set[str]:
    """Get the set of table names expected from SQLModel metadata.

    This imports all models to ensure they're registered with SQLModel.metadata.
    """
    import flagmark.db.models  # noqa: F401, PLC0415

    return set(SQLModel.metadata.tables.keys())


async def create_schema(engine: AsyncEngine | None) -> None:
    """Create any missing tables.  Idempotent.

    Raises:
        RuntimeError: If engine is None.
    """
    if engine is None:
        raise RuntimeError("Database engine is not initialized")

    get_expected_tables()
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)

