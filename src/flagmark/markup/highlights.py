"""Server-side flag marker insertion into HTML.

Transforms document HTML + flag list into HTML with
``<mark class="flag-marker" data-flag-id=".." data-flag-color="..">``
elements around each flagged range.

Architecture:
    Parses a fresh ``ContentTree`` from the canonical content on every call
    (never patches a previously rendered string), maps each flag's absolute
    offsets onto text-node anchors with ``locate_range``, splits the range
    at text-node boundaries so every marker sits inside a single text node,
    then splices the marker tags into the original string at the aligned
    source positions.  Bytes outside flagged ranges are never touched.
"""

from __future__ import annotations

import html as html_module
import logging
import re
from typing import TYPE_CHECKING, Any

from flagmark.errors import (
    FlagValidationError,
    SourceAlignmentError,
    StaleHighlightAnchorError,
)
from flagmark.markup.colors import marker_style, normalize_color
from flagmark.markup.content_tree import ContentTree, RangeAnchors, locate_range

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

MARKER_CLASS = "flag-marker"

# Block containers where whitespace-only text is indentation between tags;
# wrapping it would put a <mark> where only block children are allowed.
BLOCK_TAGS = frozenset(
    (
        "table",
        "tbody",
        "thead",
        "tfoot",
        "tr",
        "td",
        "th",
        "ul",
        "ol",
        "li",
        "dl",
        "dt",
        "dd",
        "div",
        "section",
        "article",
        "aside",
        "header",
        "footer",
        "nav",
        "main",
        "figure",
        "figcaption",
        "blockquote",
    )
)

_MARKER_RE = re.compile(
    rf'<mark class="{MARKER_CLASS}"[^>]*>(.*?)</mark>',
    re.DOTALL,
)


def _open_tag(flag: Any) -> str:
    color = normalize_color(str(flag.color))
    attrs = [f'class="{MARKER_CLASS}"']
    flag_id = getattr(flag, "id", None)
    if flag_id is not None:
        attrs.append(f'data-flag-id="{html_module.escape(str(flag_id))}"')
    attrs.append(f'data-flag-color="{html_module.escape(color)}"')
    attrs.append(f'style="{marker_style(color)}"')
    return f"<mark {' '.join(attrs)}>"


def _pieces(tree: ContentTree, anchors: RangeAnchors) -> list[tuple[int, int]]:
    """Split anchored range into per-text-node ``(source_start, source_end)``."""
    first = anchors.start.segment.index
    last = anchors.end.segment.index
    pieces: list[tuple[int, int]] = []

    for seg in tree.segments[first : last + 1]:
        lo = anchors.start.offset if seg.index == first else 0
        hi = anchors.end.offset if seg.index == last else len(seg)
        if hi <= lo:
            continue
        if seg.parent_tag in BLOCK_TAGS and not seg.text[lo:hi].strip():
            continue
        pieces.append((seg.source_position(lo), seg.source_position(hi)))

    return pieces


def _splice(html: str, insertions: list[tuple[int, int, str]]) -> str:
    """Insert tags at source positions.

    At the same position closing tags (rank 0) precede opening tags
    (rank 1), so touching flags come out as ``</mark><mark ...>``.
    """
    insertions.sort(key=lambda item: (item[0], item[1]))
    parts: list[str] = []
    prev = 0
    for pos, _rank, tag in insertions:
        parts.append(html[prev:pos])
        parts.append(tag)
        prev = pos
    parts.append(html[prev:])
    return "".join(parts)


def render_flags(content: str, flags: Iterable[Any]) -> str:
    """Wrap each flag's plain-text range in a marker element.

    Args:
        content: Canonical document HTML (never previously rendered).
        flags: Objects with ``start_offset``, ``end_offset``, ``color`` and
            optionally ``id``.  Overlap is assumed already excluded by the
            flag store and is not re-checked.

    Returns:
        HTML with markers inserted.  Flags whose offsets cannot be anchored
        are skipped with a warning; if the content itself cannot be aligned
        the content is returned unchanged.
    """
    sorted_flags = sorted(flags, key=lambda f: (int(f.start_offset), int(f.end_offset)))
    if not sorted_flags or not content:
        return content

    try:
        tree = ContentTree.from_html(content)
    except SourceAlignmentError:
        logger.warning("Cannot align content text with source; rendering without flags")
        return content

    insertions: list[tuple[int, int, str]] = []
    for flag in sorted_flags:
        start, end = int(flag.start_offset), int(flag.end_offset)
        anchors = locate_range(tree, start, end)
        if anchors is None:
            stale = StaleHighlightAnchorError(start, end, len(tree))
            logger.warning("Skipping flag %s: %s", getattr(flag, "id", None), stale)
            continue
        try:
            open_tag = _open_tag(flag)
        except FlagValidationError as exc:
            logger.warning("Skipping flag %s: %s", getattr(flag, "id", None), exc)
            continue

        for source_start, source_end in _pieces(tree, anchors):
            insertions.append((source_start, 1, open_tag))
            insertions.append((source_end, 0, "</mark>"))

    return _splice(content, insertions)


def strip_markers(html: str) -> str:
    """Remove markers produced by ``render_flags``, keeping their text."""
    return _MARKER_RE.sub(r"\1", html)
