"""Tests for flag invariant checks shared by interactive creation and import."""

from __future__ import annotations

import pytest

from flagmark.db.flags import find_overlap, validate_flag_span
from flagmark.db.models import Flag
from flagmark.errors import FlagValidationError
from flagmark.markup.content_tree import OffsetSpan

PLAIN = "Hello world"


class TestValidateFlagSpan:
    """A flag must name exactly the projection text it covers."""

    def test_valid(self) -> None:
        color, span = validate_flag_span(PLAIN, "world", "RED", 6, 11)
        assert color == "red"
        assert span == OffsetSpan(6, 11)

    @pytest.mark.parametrize(("start", "end"), [(-1, 4), (5, 5), (8, 6), (6, 12)])
    def test_offsets_out_of_range(self, start: int, end: int) -> None:
        with pytest.raises(FlagValidationError, match="outside document"):
            validate_flag_span(PLAIN, "x", "red", start, end)

    def test_text_mismatch(self) -> None:
        with pytest.raises(FlagValidationError, match="does not match"):
            validate_flag_span(PLAIN, "World", "red", 6, 11)

    def test_whitespace_text(self) -> None:
        with pytest.raises(FlagValidationError, match="empty"):
            validate_flag_span(PLAIN, " ", "red", 5, 6)

    def test_bad_colour(self) -> None:
        with pytest.raises(FlagValidationError, match="Unsupported flag colour"):
            validate_flag_span(PLAIN, "world", "purple", 6, 11)


class TestFindOverlap:
    """Overlap lookup returns the conflicting flag itself."""

    def _flags(self) -> list[Flag]:
        return [
            Flag(
                id=1, document_id=1, text="Hello", color="red",
                start_offset=0, end_offset=5,
            ),
            Flag(
                id=2, document_id=1, text="rld", color="green",
                start_offset=8, end_offset=11,
            ),
        ]

    def test_conflict(self) -> None:
        conflict = find_overlap(OffsetSpan(3, 8), self._flags())
        assert conflict is not None
        assert conflict.id == 1

    def test_touching_is_not_a_conflict(self) -> None:
        assert find_overlap(OffsetSpan(5, 8), self._flags()) is None

    def test_no_flags(self) -> None:
        assert find_overlap(OffsetSpan(0, 1), []) is None
