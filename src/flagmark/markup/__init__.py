"""Offset mapping and flag marker rendering over document HTML."""

from flagmark.markup.colors import NAMED_COLORS, marker_style, normalize_color, to_hex
from flagmark.markup.content_tree import (
    Anchor,
    ContentTree,
    OffsetSpan,
    RangeAnchors,
    SelectionRange,
    TextSegment,
    classify_selection,
    first_overlap,
    locate_range,
    locate_selection,
    plain_text_of,
    selection_for,
    text_between,
)
from flagmark.markup.highlights import MARKER_CLASS, render_flags, strip_markers

__all__ = [
    "MARKER_CLASS",
    "NAMED_COLORS",
    "Anchor",
    "ContentTree",
    "OffsetSpan",
    "RangeAnchors",
    "SelectionRange",
    "TextSegment",
    "classify_selection",
    "first_overlap",
    "locate_range",
    "locate_selection",
    "marker_style",
    "normalize_color",
    "plain_text_of",
    "render_flags",
    "selection_for",
    "strip_markers",
    "text_between",
    "to_hex",
]
