"""Selection controller: pointer-up selections to validated flag spans.

The hosting UI layer resolves a pointer-up into a ``PointerUpEvent`` (the
browser selection re-expressed against the current ``ContentTree``) and
hands it to the controller, which runs the per-event state machine::

    IDLE -> SELECTION_DETECTED -> ACCEPTED
                               -> REJECTED_EMPTY
                               -> REJECTED_OUT_OF_BOUNDS
                               -> REJECTED_MISMATCH
                               -> REJECTED_OVERLAP

Only ``REJECTED_OVERLAP`` is reported to the user; every other rejection is
silent because there is simply nothing actionable selected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from flagmark.errors import (
    EmptySelectionError,
    OffsetMismatchError,
    OutOfContainerError,
    OverlapConflictError,
    SelectionRejectedError,
)
from flagmark.markup.content_tree import (
    ContentTree,
    OffsetSpan,
    SelectionRange,
    classify_selection,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

OVERLAP_MESSAGE = "Selection overlaps an existing flag"


class SelectionState(StrEnum):
    """Where the controller is in handling the latest pointer-up."""

    IDLE = "idle"
    SELECTION_DETECTED = "selection_detected"
    ACCEPTED = "accepted"
    REJECTED_EMPTY = "rejected_empty"
    REJECTED_OUT_OF_BOUNDS = "rejected_out_of_bounds"
    REJECTED_MISMATCH = "rejected_mismatch"
    REJECTED_OVERLAP = "rejected_overlap"


_REJECTION_STATES: dict[type[SelectionRejectedError], SelectionState] = {
    EmptySelectionError: SelectionState.REJECTED_EMPTY,
    OutOfContainerError: SelectionState.REJECTED_OUT_OF_BOUNDS,
    OffsetMismatchError: SelectionState.REJECTED_MISMATCH,
    OverlapConflictError: SelectionState.REJECTED_OVERLAP,
}


@dataclass(frozen=True)
class PointerUpEvent:
    """A resolved pointer-up as delivered by the hosting UI.

    Attributes:
        selection: The active selection, or None if there is none.
        collapsed: True for a caret (zero-length) selection.
        inside_container: Whether the selection's common ancestor lies
            inside the tracked container.
    """

    selection: SelectionRange | None
    collapsed: bool = False
    inside_container: bool = True


@dataclass(frozen=True)
class SelectionOutcome:
    """Result of handling one pointer-up."""

    state: SelectionState
    span: OffsetSpan | None = None
    text: str = ""
    error: SelectionRejectedError | None = None

    @property
    def accepted(self) -> bool:
        return self.state is SelectionState.ACCEPTED


class PointerUpSource(Protocol):
    """Anything that can deliver pointer-up events to a handler."""

    def add_pointer_up_listener(
        self, handler: Callable[[PointerUpEvent], Any]
    ) -> None: ...

    def remove_pointer_up_listener(
        self, handler: Callable[[PointerUpEvent], Any]
    ) -> None: ...


class SelectionController:
    """Validate pointer-up selections against the current content tree.

    Args:
        on_text_select: Called with ``(text, start, end)`` for an accepted
            selection.
        on_overlap: Called with a user-facing message when the selection
            intersects an existing flag.
        check_overlap: Whether to reject selections overlapping flags.
    """

    def __init__(
        self,
        on_text_select: Callable[[str, int, int], Any],
        *,
        on_overlap: Callable[[str], Any] | None = None,
        check_overlap: bool = True,
    ) -> None:
        self._on_text_select = on_text_select
        self._on_overlap = on_overlap
        self._check_overlap = check_overlap
        self._handler = self.handle_pointer_up
        self._source: PointerUpSource | None = None
        self._tree: ContentTree | None = None
        self._existing: tuple[OffsetSpan, ...] = ()
        self._bound = False
        self.state = SelectionState.IDLE

    @property
    def tree(self) -> ContentTree | None:
        return self._tree

    @property
    def is_bound(self) -> bool:
        return self._bound

    # ------------------------------------------------------------------
    # Listener lifecycle
    # ------------------------------------------------------------------

    def _unbind(self) -> None:
        if self._bound and self._source is not None:
            self._source.remove_pointer_up_listener(self._handler)
        self._bound = False

    def _bind(self) -> None:
        if self._source is not None and self._tree is not None and not self._bound:
            self._source.add_pointer_up_listener(self._handler)
            self._bound = True

    def attach(self, source: PointerUpSource) -> None:
        """Attach to an event source; listening starts once content is set."""
        self._unbind()
        self._source = source
        self._bind()

    def set_content(
        self,
        tree: ContentTree | None,
        flags: Iterable[Any] | None = None,
    ) -> None:
        """Track a new content tree, re-binding the listener if it changed.

        Args:
            tree: The tree for what the container currently displays, or
                None while the document is loading.
            flags: Existing flags (anything with ``start_offset`` and
                ``end_offset``) for the overlap check.
        """
        if tree is not self._tree:
            self._unbind()
            self._tree = tree
            self._bind()
        if flags is not None:
            self.set_flags(flags)

    def set_flags(self, flags: Iterable[Any]) -> None:
        """Replace the spans used for the overlap check."""
        self._existing = tuple(OffsetSpan.of(flag) for flag in flags)

    def teardown(self) -> None:
        """Unbind the listener and forget the content."""
        self._unbind()
        self._source = None
        self._tree = None
        self._existing = ()
        self.state = SelectionState.IDLE

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_pointer_up(self, event: PointerUpEvent) -> SelectionOutcome:
        """Run the state machine for one pointer-up event."""
        self.state = SelectionState.IDLE
        if (
            self._tree is None
            or event.selection is None
            or event.collapsed
            or not event.inside_container
        ):
            return SelectionOutcome(SelectionState.IDLE)

        self.state = SelectionState.SELECTION_DETECTED
        existing = self._existing if self._check_overlap else None
        try:
            span = classify_selection(self._tree, event.selection, existing)
        except SelectionRejectedError as exc:
            self.state = _REJECTION_STATES.get(
                type(exc), SelectionState.REJECTED_OUT_OF_BOUNDS
            )
            if isinstance(exc, OverlapConflictError):
                logger.info("Selection rejected: %s", exc)
                if self._on_overlap is not None:
                    self._on_overlap(OVERLAP_MESSAGE)
            else:
                logger.debug("Selection ignored (%s): %s", self.state, exc)
            return SelectionOutcome(self.state, error=exc)

        text = event.selection.text.strip()
        self.state = SelectionState.ACCEPTED
        self._on_text_select(text, span.start, span.end)
        return SelectionOutcome(self.state, span=span, text=text)
