"""Exception hierarchy for flagmark.

Selection rejections are recovered inside the selection controller and
render failures inside the highlight renderer.  Store and import errors
propagate to the caller (page or CLI), which reports them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flagmark.markup.content_tree import OffsetSpan


class FlagmarkError(Exception):
    """Base class for all flagmark errors."""


# ---------------------------------------------------------------------------
# Selection rejections
# ---------------------------------------------------------------------------


class SelectionRejectedError(FlagmarkError):
    """A pointer-up selection cannot become a flag."""


class EmptySelectionError(SelectionRejectedError):
    """The selection contains no visible text after trimming."""


class OutOfContainerError(SelectionRejectedError):
    """The selection starts outside the tracked content tree."""


class OffsetMismatchError(SelectionRejectedError):
    """The computed span does not reproduce the selected text exactly."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Selected text {expected!r} does not match span {actual!r}")


class OverlapConflictError(SelectionRejectedError):
    """A candidate span intersects an existing flag."""

    def __init__(self, candidate: OffsetSpan, existing: OffsetSpan) -> None:
        self.candidate = candidate
        self.existing = existing
        super().__init__(
            f"Range [{candidate.start}, {candidate.end}) overlaps existing flag "
            f"[{existing.start}, {existing.end})"
        )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class StaleHighlightAnchorError(FlagmarkError):
    """A stored flag's offsets no longer resolve to text in the content."""

    def __init__(self, start: int, end: int, length: int) -> None:
        self.start = start
        self.end = end
        self.length = length
        super().__init__(
            f"Cannot anchor [{start}, {end}) in content of length {length}"
        )


class SourceAlignmentError(FlagmarkError, ValueError):
    """A parsed text node could not be located in the original HTML string."""


# ---------------------------------------------------------------------------
# Store / import
# ---------------------------------------------------------------------------


class DocumentNotFoundError(FlagmarkError, LookupError):
    """Raised when a document id has no row and is not seedable."""

    def __init__(self, document_id: int) -> None:
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class FlagValidationError(FlagmarkError, ValueError):
    """A flag's colour, offsets or text violate the flag invariants."""


class FlagFormatError(FlagmarkError, ValueError):
    """Malformed flag import data."""

    def __init__(self, message: str, row: int | None = None) -> None:
        self.row = row
        if row is not None:
            message = f"Row {row}: {message}"
        super().__init__(message)
