"""Offset mapping between HTML text nodes and plain-text character offsets.

A ``ContentTree`` is an immutable parse of one HTML string.  It records every
text node in document order together with where its characters fall in the
plain-text projection (``char_start``/``char_end``) and where its source text
sits in the original HTML string (``source_start`` plus per-character source
offsets).  That second mapping is what lets the highlight renderer splice
markers into the original string without re-serialising it.

Architecture:
    Pass 1 walks the selectolax tree (child/next iteration exposes text
    nodes) to build the segment list.  Pass 2 aligns each segment with the
    original string, searching sequentially through the text runs left
    between markup so matches follow document order and never land inside a
    tag, comment or raw-text element.
"""

# Pattern: Functional Core (pure functions over an immutable parse)

from __future__ import annotations

import html as html_module
import logging
import re
from dataclasses import dataclass, field
from html.entities import html5 as html5_entities
from typing import TYPE_CHECKING, Any

from selectolax.lexbor import LexborHTMLParser

from flagmark.errors import (
    EmptySelectionError,
    OffsetMismatchError,
    OutOfContainerError,
    OverlapConflictError,
    SelectionRejectedError,
    SourceAlignmentError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

# Elements whose text is never rendered as selectable document text
STRIP_TAGS = frozenset(
    ("script", "style", "noscript", "template", "title", "textarea")
)

# Markup in the source string: comments, STRIP_TAGS elements with their content,
# doctype/processing instructions, and start/end tags (quoted attributes may
# contain ``>``).
_MARKUP = re.compile(
    r"<!--.*?-->"
    r"|<(script|style|noscript|template|title|textarea)\b"
    r"(?:\"[^\"]*\"|'[^']*'|[^'\">])*>.*?</\1\s*>"
    r"|<[!?/a-zA-Z](?:\"[^\"]*\"|'[^']*'|[^'\">])*>",
    re.DOTALL | re.IGNORECASE,
)

_ENTITY = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[a-zA-Z][a-zA-Z0-9]*);?")

# Named references the parser also accepts without a trailing semicolon
_LEGACY_ENTITIES = {
    name: value for name, value in html5_entities.items() if not name.endswith(";")
}

# Whitespace before <body> never reaches the body, so alignment starts after it
_BODY_START = re.compile(r"<body\b(?:\"[^\"]*\"|'[^']*'|[^'\">])*>", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class TextSegment:
    """One text node's contribution to the plain-text projection.

    Segments compare by identity: a selection anchored in another tree's
    segment is outside this tree even if the text is the same.

    Attributes:
        index: Position in the in-order sequence of text nodes.
        text: Decoded text (entities resolved).
        parent_tag: Tag name of the enclosing element.
        char_start: Starting offset in the plain-text projection.
        char_end: Ending offset (exclusive).
        source_start: Offset of the node's first source character in the HTML.
        source_offsets: ``source_offsets[i]`` is the source offset (relative
            to ``source_start``) of decoded character ``i``; the final entry
            is the length of the node's source text.
    """

    index: int
    text: str
    parent_tag: str
    char_start: int
    char_end: int
    source_start: int = 0
    source_offsets: tuple[int, ...] = field(default=(), repr=False)

    def __len__(self) -> int:
        return self.char_end - self.char_start

    @property
    def source_end(self) -> int:
        return self.source_start + self.source_offsets[-1]

    def source_position(self, offset: int) -> int:
        """Absolute HTML offset of the in-node character *offset*."""
        return self.source_start + self.source_offsets[offset]


@dataclass(frozen=True)
class OffsetSpan:
    """A half-open ``[start, end)`` range over the plain-text projection."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.start >= self.end:
            msg = f"Invalid span [{self.start}, {self.end})"
            raise ValueError(msg)

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: OffsetSpan) -> bool:
        """Half-open overlap test; touching spans do not overlap."""
        return self.start < other.end and other.start < self.end

    @classmethod
    def of(cls, flag: Any) -> OffsetSpan:
        """Build a span from anything with ``start_offset``/``end_offset``."""
        return cls(int(flag.start_offset), int(flag.end_offset))


@dataclass(frozen=True)
class SelectionRange:
    """A selection as the hosting UI reports it.

    Attributes:
        start_container: Text node the selection starts in.
        start_offset: Character index inside ``start_container``.
        text: The raw (untrimmed) selection string.
    """

    start_container: TextSegment
    start_offset: int
    text: str


@dataclass(frozen=True)
class Anchor:
    """A position expressed as (text node, in-node offset)."""

    segment: TextSegment
    offset: int

    @property
    def absolute(self) -> int:
        return self.segment.char_start + self.offset


@dataclass(frozen=True)
class RangeAnchors:
    """Start and end anchors for an absolute range."""

    start: Anchor
    end: Anchor


# ---------------------------------------------------------------------------
# Pass 1: DOM walk
# ---------------------------------------------------------------------------


@dataclass
class _RawNode:
    """Text node data gathered during the walk, before source alignment."""

    text: str
    html_text: str
    parent_tag: str


def _walk_text_nodes(html: str) -> list[_RawNode]:
    """Collect non-empty text nodes below the body in document order."""
    tree = LexborHTMLParser(html)
    body = tree.body
    root = body if body else tree.root
    if root is None:
        return []

    nodes: list[_RawNode] = []

    def _walk(node: Any) -> None:
        tag = node.tag

        # Text node - selectolax uses "-text" as the tag
        if tag == "-text":
            text = node.text_content
            if not text:
                return
            parent = node.parent
            nodes.append(
                _RawNode(
                    text=text,
                    html_text=node.html or text,
                    parent_tag=parent.tag if parent is not None else "",
                )
            )
            return

        # Comments, doctype and never-rendered elements contribute no text
        if tag.startswith(("_", "-")) or tag in STRIP_TAGS:
            return

        child = node.child
        while child is not None:
            _walk(child)
            child = child.next

    child = root.child
    while child is not None:
        _walk(child)
        child = child.next

    return nodes


# ---------------------------------------------------------------------------
# Pass 2: source alignment
# ---------------------------------------------------------------------------


def _text_runs(html: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` source regions that lie between markup."""
    runs: list[tuple[int, int]] = []
    pos = 0
    for match in _MARKUP.finditer(html):
        if match.start() > pos:
            runs.append((pos, match.start()))
        pos = match.end()
    if pos < len(html):
        runs.append((pos, len(html)))
    return runs


def _char_pattern(char: str) -> str:
    """Regex alternatives for one decoded character in HTML source."""
    if char == "\n":
        return r"(?:\r\n|\r|\n|&[#a-zA-Z0-9]+;?)"
    return f"(?:{re.escape(char)}|&[#a-zA-Z0-9]+;?)"


def _entity_end(source: str, pos: int, char: str) -> int | None:
    """End of the character reference at *pos* if it decodes to *char*."""
    match = _ENTITY.match(source, pos)
    if match is None:
        return None
    ref = match.group()
    if html_module.unescape(ref) == char:
        return match.end()
    # A legacy name may run into the following word ("&copyright")
    name = ref[1:].rstrip(";")
    for size in range(len(name) - 1, 1, -1):
        if _LEGACY_ENTITIES.get(name[:size]) == char:
            return pos + 1 + size
    return None


def _source_offsets(source: str, pos: int, text: str) -> tuple[int, ...] | None:
    """Map each decoded character of *text* onto *source* starting at *pos*.

    Returns relative offsets (length ``len(text) + 1``), or None when the
    source at *pos* does not encode *text*.
    """
    offsets: list[int] = []
    j = pos
    for char in text:
        offsets.append(j - pos)
        if j >= len(source):
            return None
        if char == "\n" and source.startswith("\r\n", j):
            j += 2
            continue
        if char == "\n" and source[j] == "\r":
            j += 1
            continue
        if source[j] == "&":
            entity_end = _entity_end(source, j, char)
            if entity_end is not None:
                j = entity_end
                continue
        if source[j] != char:
            return None
        j += 1
    offsets.append(j - pos)
    return tuple(offsets)


def _find_in_run(
    html: str, lo: int, hi: int, node: _RawNode
) -> tuple[int, tuple[int, ...]] | None:
    """Find *node* in ``html[lo:hi]``; return (absolute start, offsets)."""
    for needle in (node.text, node.html_text):
        idx = html.find(needle, lo, hi)
        if idx != -1:
            offsets = _source_offsets(html, idx, node.text)
            if offsets is not None:
                return idx, offsets

    # Slow path: source spells characters with entities or CRLF line endings
    pattern = re.compile("".join(_char_pattern(c) for c in node.text))
    for match in pattern.finditer(html, lo, hi):
        offsets = _source_offsets(html, match.start(), node.text)
        if offsets is not None:
            return match.start(), offsets
    return None


def _align_segments(html: str, raw_nodes: list[_RawNode]) -> list[TextSegment]:
    """Locate every text node in the original HTML string.

    Raises:
        SourceAlignmentError: If a text node has no match in the remaining
            text runs (e.g. the parser moved or merged text).
    """
    runs = _text_runs(html)
    run_idx = 0
    body_start = _BODY_START.search(html)
    search_from = body_start.end() if body_start else 0
    cursor = 0
    segments: list[TextSegment] = []

    for index, node in enumerate(raw_nodes):
        found: tuple[int, tuple[int, ...]] | None = None
        while run_idx < len(runs):
            run_start, run_end = runs[run_idx]
            lo = max(run_start, search_from)
            if lo < run_end:
                found = _find_in_run(html, lo, run_end, node)
                if found is not None:
                    break
            run_idx += 1

        if found is None:
            msg = (
                f"Could not find text node {node.text[:40]!r} "
                f"in HTML starting from offset {search_from}"
            )
            raise SourceAlignmentError(msg)

        source_start, offsets = found
        segments.append(
            TextSegment(
                index=index,
                text=node.text,
                parent_tag=node.parent_tag,
                char_start=cursor,
                char_end=cursor + len(node.text),
                source_start=source_start,
                source_offsets=offsets,
            )
        )
        cursor += len(node.text)
        search_from = source_start + offsets[-1]

    return segments


# ---------------------------------------------------------------------------
# ContentTree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentTree:
    """Immutable parse of an HTML string, exposing in-order text segments."""

    html: str
    segments: tuple[TextSegment, ...]

    @classmethod
    def from_html(cls, html: str) -> ContentTree:
        """Parse *html* and align its text nodes with the source string.

        Raises:
            SourceAlignmentError: If the text nodes cannot be aligned.
        """
        if not html:
            return cls(html="", segments=())
        raw_nodes = _walk_text_nodes(html)
        return cls(html=html, segments=tuple(_align_segments(html, raw_nodes)))

    @property
    def plain_text(self) -> str:
        return "".join(seg.text for seg in self.segments)

    def __len__(self) -> int:
        return self.segments[-1].char_end if self.segments else 0

    def __iter__(self) -> Iterator[TextSegment]:
        return iter(self.segments)

    def segment_at(self, index: int) -> TextSegment | None:
        """Return the text segment at *index*, or None if out of range."""
        if 0 <= index < len(self.segments):
            return self.segments[index]
        return None

    def contains(self, segment: TextSegment) -> bool:
        """Whether *segment* belongs to this tree (identity, not equality)."""
        return self.segment_at(segment.index) is segment


def plain_text_of(html: str) -> str:
    """Return the plain-text projection of *html*.

    Text nodes are concatenated in document order with no whitespace
    collapsing; text inside ``STRIP_TAGS`` elements is excluded.
    Unlike ``ContentTree.from_html`` this never needs source alignment.
    """
    if not html:
        return ""
    return "".join(node.text for node in _walk_text_nodes(html))


# ---------------------------------------------------------------------------
# Forward mapping: selection -> offsets
# ---------------------------------------------------------------------------


def first_overlap(
    candidate: OffsetSpan, existing: Iterable[OffsetSpan]
) -> OffsetSpan | None:
    """Return the first span in *existing* that overlaps *candidate*."""
    for span in existing:
        if candidate.overlaps(span):
            return span
    return None


def classify_selection(
    tree: ContentTree,
    selection: SelectionRange,
    existing: Iterable[OffsetSpan] | None = None,
) -> OffsetSpan:
    """Compute the absolute span of *selection*, raising on rejection.

    The start offset is the cumulative length of all segments before
    ``selection.start_container`` plus ``selection.start_offset``, advanced
    past any leading whitespace that trimming removed.  The end offset is the
    start plus the trimmed text length.  Only the start container is used,
    so discontiguous selections are not supported.

    Raises:
        EmptySelectionError: Nothing but whitespace was selected.
        OutOfContainerError: The start container is not in *tree* or the
            in-node offset is outside it.
        OffsetMismatchError: The plain text at the computed span differs from
            the trimmed selection.
        OverlapConflictError: The span intersects one of *existing*.
    """
    trimmed = selection.text.strip()
    if not trimmed:
        raise EmptySelectionError("Selection is empty")

    segment = selection.start_container
    if not tree.contains(segment) or not 0 <= selection.start_offset <= len(segment):
        raise OutOfContainerError("Selection starts outside the content tree")

    # Cumulative count over the segments visited before the match
    cursor = 0
    for seg in tree:
        if seg is segment:
            break
        cursor += len(seg)

    leading = len(selection.text) - len(selection.text.lstrip())
    start = cursor + selection.start_offset + leading
    end = start + len(trimmed)

    actual = tree.plain_text[start:end]
    if actual != trimmed:
        raise OffsetMismatchError(trimmed, actual)

    span = OffsetSpan(start, end)
    if existing is not None:
        conflict = first_overlap(span, existing)
        if conflict is not None:
            raise OverlapConflictError(span, conflict)
    return span


def locate_selection(
    tree: ContentTree,
    selection: SelectionRange,
    existing: Iterable[OffsetSpan] | None = None,
) -> OffsetSpan | None:
    """Compute the absolute span of *selection*.

    Returns None for empty, out-of-container or mismatching selections.

    Raises:
        OverlapConflictError: The span intersects one of *existing*.
    """
    try:
        return classify_selection(tree, selection, existing)
    except OverlapConflictError:
        raise
    except SelectionRejectedError as exc:
        logger.debug("Selection rejected: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Inverse mapping: offsets -> anchors
# ---------------------------------------------------------------------------


def locate_range(tree: ContentTree, start: int, end: int) -> RangeAnchors | None:
    """Find the text-node anchors for the absolute range ``[start, end)``.

    The start anchor lies in the first segment whose cumulative end exceeds
    *start*.  The end anchor lies in the first segment that contains *end*
    (a segment's own end is a valid end anchor).

    Returns:
        The anchors, or None if the range is empty or either boundary falls
        outside all text nodes.
    """
    if start < 0 or start >= end:
        return None

    start_anchor: Anchor | None = None
    for seg in tree:
        if start_anchor is None and seg.char_end > start:
            start_anchor = Anchor(seg, start - seg.char_start)
        if start_anchor is not None and seg.char_start < end <= seg.char_end:
            return RangeAnchors(start_anchor, Anchor(seg, end - seg.char_start))
    return None


def text_between(tree: ContentTree, anchors: RangeAnchors) -> str:
    """Extract the text covered by *anchors*, node by node."""
    first = anchors.start.segment.index
    last = anchors.end.segment.index
    if first == last:
        return anchors.start.segment.text[anchors.start.offset : anchors.end.offset]

    parts = [anchors.start.segment.text[anchors.start.offset :]]
    parts.extend(seg.text for seg in tree.segments[first + 1 : last])
    parts.append(anchors.end.segment.text[: anchors.end.offset])
    return "".join(parts)


def selection_for(tree: ContentTree, anchors: RangeAnchors) -> SelectionRange:
    """Build the selection a browser would report for *anchors*."""
    return SelectionRange(
        start_container=anchors.start.segment,
        start_offset=anchors.start.offset,
        text=text_between(tree, anchors),
    )
