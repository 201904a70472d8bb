"""CSV export and import of flags.

Wire format: a header row ``Text,Color,StartOffset,EndOffset`` followed by
one row per flag.  Offsets index the document's plain-text projection.
"""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING, Any

from flagmark.db.flags import FlagRow
from flagmark.errors import FlagFormatError

if TYPE_CHECKING:
    from collections.abc import Iterable

CSV_COLUMNS = ("Text", "Color", "StartOffset", "EndOffset")


def export_flags_csv(flags: Iterable[Any]) -> str:
    """Serialise flags (anything with text/color/offsets) to CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for flag in sorted(flags, key=lambda f: int(f.start_offset)):
        writer.writerow((flag.text, flag.color, flag.start_offset, flag.end_offset))
    return buffer.getvalue()


def _parse_offset(value: str | None, column: str, row: int) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        msg = f"{column} must be an integer, got {value!r}"
        raise FlagFormatError(msg, row=row) from None


def parse_flags_csv(text: str) -> list[FlagRow]:
    """Parse CSV text into flag rows.

    A UTF-8 byte-order mark is tolerated.  Rows are numbered from 1 for the
    first data row.

    Raises:
        FlagFormatError: Missing header columns, a short row, empty text, or
            non-integer offsets.
    """
    reader = csv.DictReader(io.StringIO(text.removeprefix("\ufeff")))
    header = reader.fieldnames or []
    missing = [column for column in CSV_COLUMNS if column not in header]
    if missing:
        msg = f"CSV is missing column(s): {', '.join(missing)}"
        raise FlagFormatError(msg)

    rows: list[FlagRow] = []
    for row_number, record in enumerate(reader, start=1):
        if any(record.get(column) is None for column in CSV_COLUMNS):
            raise FlagFormatError("Row has too few fields", row=row_number)

        flag_text = record["Text"]
        if not flag_text.strip():
            raise FlagFormatError("Text is empty", row=row_number)

        rows.append(
            FlagRow(
                text=flag_text,
                color=record["Color"].strip(),
                start_offset=_parse_offset(
                    record["StartOffset"], "StartOffset", row_number
                ),
                end_offset=_parse_offset(record["EndOffset"], "EndOffset", row_number),
            )
        )
    return rows
