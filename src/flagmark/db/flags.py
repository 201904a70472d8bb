"""Flag Store Client: CRUD and bulk import for flags.

Every write validates the flag invariants against the document's
plain-text projection before touching the database:

- ``0 <= start_offset < end_offset <= len(projection)``
- ``text == projection[start_offset:end_offset]``
- no overlap with the document's other flags (touching is fine)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlmodel import col, select

from flagmark.db.documents import get_document
from flagmark.db.engine import get_session
from flagmark.db.models import Flag
from flagmark.errors import (
    FlagFormatError,
    FlagValidationError,
    OverlapConflictError,
)
from flagmark.markup.colors import normalize_color
from flagmark.markup.content_tree import OffsetSpan, first_overlap, plain_text_of

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlagRow:
    """One flag to import (no id, no document)."""

    text: str
    color: str
    start_offset: int
    end_offset: int


def validate_flag_span(
    plain_text: str,
    text: str,
    color: str,
    start_offset: int,
    end_offset: int,
) -> tuple[str, OffsetSpan]:
    """Check a prospective flag against the document's plain text.

    Returns:
        ``(normalised_colour, span)``.

    Raises:
        FlagValidationError: Bad colour, out-of-range offsets, or text that
            does not match the projection slice.
    """
    normalised = normalize_color(color)

    if not 0 <= start_offset < end_offset <= len(plain_text):
        msg = (
            f"Offsets [{start_offset}, {end_offset}) outside document "
            f"of length {len(plain_text)}"
        )
        raise FlagValidationError(msg)

    if not text.strip():
        raise FlagValidationError("Flag text is empty")

    actual = plain_text[start_offset:end_offset]
    if actual != text:
        msg = f"Flag text {text!r} does not match document text {actual!r}"
        raise FlagValidationError(msg)

    return normalised, OffsetSpan(start_offset, end_offset)


def find_overlap(candidate: OffsetSpan, flags: Iterable[Flag]) -> Flag | None:
    """Return the first flag whose range overlaps *candidate*."""
    by_span = {OffsetSpan.of(flag): flag for flag in flags}
    conflict = first_overlap(candidate, by_span)
    return by_span[conflict] if conflict is not None else None


async def list_flags(document_id: int) -> list[Flag]:
    """Get all flags for a document, ordered by start offset."""
    async with get_session() as session:
        result = await session.exec(
            select(Flag)
            .where(Flag.document_id == document_id)
            .order_by(col(Flag.start_offset))
        )
        return list(result.all())


async def get_flag(flag_id: int) -> Flag | None:
    """Get a single flag by ID, or None if not found."""
    async with get_session() as session:
        return await session.get(Flag, flag_id)


async def create_flag(
    document_id: int,
    text: str,
    color: str,
    start_offset: int,
    end_offset: int,
) -> Flag:
    """Create a new flag.

    Args:
        document_id: The document the flag belongs to.
        text: The flagged text (must equal the projection slice).
        color: Named colour or hex.
        start_offset: Start character offset (inclusive).
        end_offset: End character offset (exclusive).

    Returns:
        The created Flag with generated ID.

    Raises:
        DocumentNotFoundError: If the document does not exist.
        FlagValidationError: If the flag violates the invariants.
        OverlapConflictError: If the range overlaps an existing flag.
    """
    document = await get_document(document_id)
    normalised, span = validate_flag_span(
        plain_text_of(document.content), text, color, start_offset, end_offset
    )

    conflict = find_overlap(span, await list_flags(document_id))
    if conflict is not None:
        raise OverlapConflictError(span, OffsetSpan.of(conflict))

    async with get_session() as session:
        flag = Flag(
            document_id=document_id,
            text=text,
            color=normalised,
            start_offset=start_offset,
            end_offset=end_offset,
        )
        session.add(flag)
        await session.flush()
        await session.refresh(flag)

    logger.info(
        "Created flag %s on document %s [%d, %d) %s",
        flag.id,
        document_id,
        start_offset,
        end_offset,
        normalised,
    )
    return flag


async def delete_flag(flag_id: int) -> bool:
    """Delete a flag.

    Returns:
        True if deleted, False if not found.
    """
    async with get_session() as session:
        flag = await session.get(Flag, flag_id)
        if not flag:
            return False
        await session.delete(flag)
    logger.info("Deleted flag %s", flag_id)
    return True


async def delete_all_flags(document_id: int) -> int:
    """Delete every flag on a document.

    Returns:
        Number of flags deleted.
    """
    async with get_session() as session:
        result = await session.exec(select(Flag).where(Flag.document_id == document_id))
        flags = result.all()
        for flag in flags:
            await session.delete(flag)
    logger.info("Deleted %d flag(s) from document %s", len(flags), document_id)
    return len(flags)


async def import_flags(document_id: int, rows: Sequence[FlagRow]) -> int:
    """Import flags in bulk.  All-or-nothing.

    Each row is validated against the document, the flags already on it,
    and the rows before it.  Nothing is written unless every row passes.

    Args:
        document_id: The document to import into.
        rows: Flags to create.  Row numbers in errors are 1-based.

    Returns:
        Number of flags created.

    Raises:
        DocumentNotFoundError: If the document does not exist.
        FlagFormatError: If any row is invalid or overlaps another flag.
    """
    document = await get_document(document_id)
    plain_text = plain_text_of(document.content)
    taken = [OffsetSpan.of(flag) for flag in await list_flags(document_id)]

    pending: list[Flag] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            normalised, span = validate_flag_span(
                plain_text, row.text, row.color, row.start_offset, row.end_offset
            )
        except FlagValidationError as exc:
            raise FlagFormatError(str(exc), row=row_number) from exc

        conflict = first_overlap(span, taken)
        if conflict is not None:
            msg = (
                f"[{span.start}, {span.end}) overlaps "
                f"[{conflict.start}, {conflict.end})"
            )
            raise FlagFormatError(msg, row=row_number)
        taken.append(span)

        pending.append(
            Flag(
                document_id=document_id,
                text=row.text,
                color=normalised,
                start_offset=row.start_offset,
                end_offset=row.end_offset,
            )
        )

    if pending:
        async with get_session() as session:
            session.add_all(pending)

    logger.info("Imported %d flag(s) into document %s", len(pending), document_id)
    return len(pending)
