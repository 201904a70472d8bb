"""Database module for flagmark.

Provides async SQLModel operations with SQLite or PostgreSQL.
"""

from __future__ import annotations

from flagmark.db.bootstrap import create_schema, get_expected_tables
from flagmark.db.documents import create_document, find_document, get_document
from flagmark.db.engine import close_db, get_engine, get_session, init_db
from flagmark.db.flags import (
    FlagRow,
    create_flag,
    delete_all_flags,
    delete_flag,
    find_overlap,
    get_flag,
    import_flags,
    list_flags,
    validate_flag_span,
)
from flagmark.db.models import Document, Flag

__all__ = [
    "Document",
    "Flag",
    "FlagRow",
    "close_db",
    "create_document",
    "create_flag",
    "create_schema",
    "delete_all_flags",
    "delete_flag",
    "find_document",
    "find_overlap",
    "get_document",
    "get_engine",
    "get_expected_tables",
    "get_flag",
    "get_session",
    "import_flags",
    "init_db",
    "list_flags",
    "validate_flag_span",
]
