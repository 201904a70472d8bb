"""SQLModel database models for flagmark.

These models define the schema for documents and the flags placed on them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer
from sqlmodel import Field, SQLModel

from flagmark.markup.colors import MAX_COLOR_LENGTH


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _timestamptz_column() -> Any:
    """Create a TIMESTAMP WITH TIME ZONE column for PostgreSQL."""
    return Column(DateTime(timezone=True), nullable=False)


class Document(SQLModel, table=True):
    """An HTML document that flags are placed on.

    Attributes:
        id: Primary key, auto-incremented.
        content: HTML; the authoritative source for all flag offsets.
        created_at: Timestamp when the document was created.
        updated_at: Timestamp of the last content change.
    """

    id: int | None = Field(default=None, primary_key=True)
    content: str = Field(sa_column=Column(sa.Text(), nullable=False))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )


class Flag(SQLModel, table=True):
    """A colour-coded annotation over a plain-text range of a document.

    Offsets index the document's plain-text projection, not raw HTML.
    Flags are never edited after creation.

    Attributes:
        id: Primary key, auto-incremented.
        document_id: Foreign key to Document (CASCADE DELETE).
        text: The flagged text, equal to the projection slice at creation.
        color: ``red``/``yellow``/``green`` or ``#rrggbb``.
        start_offset: Start character offset (inclusive).
        end_offset: End character offset (exclusive).
        created_at: Timestamp when the flag was created.
    """

    __table_args__ = (
        CheckConstraint("start_offset >= 0", name="ck_flag_start_non_negative"),
        CheckConstraint("end_offset > start_offset", name="ck_flag_non_empty"),
    )

    id: int | None = Field(default=None, primary_key=True)
    document_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("document.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    text: str = Field(sa_column=Column(sa.Text(), nullable=False))
    color: str = Field(max_length=MAX_COLOR_LENGTH)
    start_offset: int
    end_offset: int
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )
