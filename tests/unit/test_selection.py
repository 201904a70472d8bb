"""Tests for the selection controller state machine and listener lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pytest

from flagmark.markup.content_tree import ContentTree, OffsetSpan, SelectionRange
from flagmark.selection import (
    OVERLAP_MESSAGE,
    PointerUpEvent,
    SelectionController,
    SelectionState,
)

if TYPE_CHECKING:
    from collections.abc import Callable

HTML = "<p>Hello world</p>"


@dataclass
class _Flag:
    start_offset: int
    end_offset: int


class _FakeSource:
    """In-memory pointer-up source recording its listeners."""

    def __init__(self) -> None:
        self.listeners: list[Callable[[PointerUpEvent], Any]] = []

    def add_pointer_up_listener(self, handler: Callable[[PointerUpEvent], Any]) -> None:
        self.listeners.append(handler)

    def remove_pointer_up_listener(
        self, handler: Callable[[PointerUpEvent], Any]
    ) -> None:
        self.listeners.remove(handler)

    def fire(self, event: PointerUpEvent) -> list[Any]:
        return [handler(event) for handler in list(self.listeners)]


class _Recorder:
    def __init__(self) -> None:
        self.selected: list[tuple[str, int, int]] = []
        self.overlaps: list[str] = []

    def on_text_select(self, text: str, start: int, end: int) -> None:
        self.selected.append((text, start, end))

    def on_overlap(self, message: str) -> None:
        self.overlaps.append(message)


@pytest.fixture
def recorder() -> _Recorder:
    return _Recorder()


@pytest.fixture
def tree() -> ContentTree:
    return ContentTree.from_html(HTML)


@pytest.fixture
def controller(recorder: _Recorder, tree: ContentTree) -> SelectionController:
    ctrl = SelectionController(recorder.on_text_select, on_overlap=recorder.on_overlap)
    ctrl.set_content(tree)
    return ctrl


def _event(tree: ContentTree, offset: int, text: str) -> PointerUpEvent:
    return PointerUpEvent(SelectionRange(tree.segments[0], offset, text))


class TestListenerLifecycle:
    """At most one listener is attached, and only while there is content."""

    def test_not_bound_without_content(self, recorder: _Recorder) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        assert not ctrl.is_bound
        assert source.listeners == []

    def test_binds_when_content_arrives(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        assert ctrl.is_bound
        assert len(source.listeners) == 1

    def test_same_tree_does_not_rebind(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        ctrl.set_content(tree)
        assert len(source.listeners) == 1

    def test_new_tree_rebinds_once(self, recorder: _Recorder, tree: ContentTree) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        ctrl.set_content(ContentTree.from_html("<p>Other</p>"))
        assert len(source.listeners) == 1

    def test_clearing_content_unbinds(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        ctrl.set_content(None)
        assert not ctrl.is_bound
        assert source.listeners == []

    def test_teardown_unbinds(self, recorder: _Recorder, tree: ContentTree) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        ctrl.teardown()
        assert source.listeners == []
        assert ctrl.tree is None
        assert ctrl.state is SelectionState.IDLE

    def test_reattach_moves_listener(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        first, second = _FakeSource(), _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.set_content(tree)
        ctrl.attach(first)
        ctrl.attach(second)
        assert first.listeners == []
        assert len(second.listeners) == 1

    def test_events_flow_through_source(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        source = _FakeSource()
        ctrl = SelectionController(recorder.on_text_select)
        ctrl.attach(source)
        ctrl.set_content(tree)
        source.fire(_event(tree, 6, "world"))
        assert recorder.selected == [("world", 6, 11)]


class TestStateMachine:
    """Each pointer-up ends in exactly one state."""

    def test_accepted(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        outcome = controller.handle_pointer_up(_event(tree, 6, "world"))
        assert outcome.accepted
        assert outcome.span == OffsetSpan(6, 11)
        assert outcome.text == "world"
        assert controller.state is SelectionState.ACCEPTED
        assert recorder.selected == [("world", 6, 11)]

    def test_trimmed_text_reported(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        controller.handle_pointer_up(_event(tree, 5, " world\n"))
        assert recorder.selected == [("world", 6, 11)]

    @pytest.mark.parametrize(
        "event",
        [
            PointerUpEvent(selection=None),
            PointerUpEvent(selection=None, collapsed=True),
            PointerUpEvent(selection=None, inside_container=False),
        ],
    )
    def test_idle_without_selection(
        self,
        controller: SelectionController,
        recorder: _Recorder,
        event: PointerUpEvent,
    ) -> None:
        outcome = controller.handle_pointer_up(event)
        assert outcome.state is SelectionState.IDLE
        assert recorder.selected == []

    def test_idle_without_content(self, recorder: _Recorder, tree: ContentTree) -> None:
        ctrl = SelectionController(recorder.on_text_select)
        outcome = ctrl.handle_pointer_up(_event(tree, 6, "world"))
        assert outcome.state is SelectionState.IDLE

    def test_rejected_empty(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        outcome = controller.handle_pointer_up(_event(tree, 5, " \n "))
        assert outcome.state is SelectionState.REJECTED_EMPTY
        assert recorder.selected == []
        assert recorder.overlaps == []

    def test_rejected_out_of_bounds(
        self, controller: SelectionController, recorder: _Recorder
    ) -> None:
        stale = ContentTree.from_html(HTML)
        outcome = controller.handle_pointer_up(_event(stale, 6, "world"))
        assert outcome.state is SelectionState.REJECTED_OUT_OF_BOUNDS
        assert recorder.selected == []

    def test_rejected_mismatch(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        outcome = controller.handle_pointer_up(_event(tree, 0, "world"))
        assert outcome.state is SelectionState.REJECTED_MISMATCH
        assert recorder.selected == []
        assert recorder.overlaps == []

    def test_rejected_overlap_notifies(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        controller.set_flags([_Flag(0, 5)])
        outcome = controller.handle_pointer_up(_event(tree, 3, "lo wo"))
        assert outcome.state is SelectionState.REJECTED_OVERLAP
        assert recorder.overlaps == [OVERLAP_MESSAGE]
        assert recorder.selected == []

    def test_touching_flag_accepted(
        self, controller: SelectionController, tree: ContentTree, recorder: _Recorder
    ) -> None:
        controller.set_content(tree, [_Flag(0, 5)])
        outcome = controller.handle_pointer_up(_event(tree, 6, "wo"))
        assert outcome.accepted
        assert recorder.selected == [("wo", 6, 8)]

    def test_overlap_check_can_be_disabled(
        self, recorder: _Recorder, tree: ContentTree
    ) -> None:
        ctrl = SelectionController(recorder.on_text_select, check_overlap=False)
        ctrl.set_content(tree, [_Flag(0, 5)])
        outcome = ctrl.handle_pointer_up(_event(tree, 3, "lo wo"))
        assert outcome.accepted
        assert recorder.selected == [("lo wo", 3, 8)]

    def test_state_resets_per_event(
        self, controller: SelectionController, tree: ContentTree
    ) -> None:
        controller.handle_pointer_up(_event(tree, 6, "world"))
        controller.handle_pointer_up(PointerUpEvent(selection=None, collapsed=True))
        assert controller.state is SelectionState.IDLE
