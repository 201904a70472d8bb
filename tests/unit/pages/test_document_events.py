"""Tests for translating browser pointer-up payloads on the document page."""

from __future__ import annotations

import json
import re
from types import SimpleNamespace
from unittest.mock import MagicMock

from flagmark.markup.content_tree import STRIP_TAGS, ContentTree
from flagmark.pages.document import (
    MAX_DISPLAY_LENGTH,
    ClientPointerUpSource,
    DocumentView,
    display_text,
    event_from_args,
    pointer_up_script,
)
from flagmark.selection import PointerUpEvent, SelectionController, SelectionState

HTML = "<p>Hello <b>big</b> world</p>"


def _payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "collapsed": False,
        "inside": True,
        "node": 2,
        "offset": 1,
        "text": "world",
    }
    payload.update(overrides)
    return payload


class TestEventFromArgs:
    """Payload fields map onto the current content tree."""

    def test_selection_resolved_against_tree(self) -> None:
        tree = ContentTree.from_html(HTML)
        event = event_from_args(tree, _payload())
        assert event.selection is not None
        assert event.selection.start_container is tree.segments[2]
        assert event.selection.start_offset == 1
        assert event.selection.text == "world"
        assert event.inside_container

    def test_collapsed(self) -> None:
        tree = ContentTree.from_html(HTML)
        event = event_from_args(tree, {"collapsed": True})
        assert event.collapsed
        assert event.selection is None

    def test_missing_collapsed_flag_treated_as_collapsed(self) -> None:
        tree = ContentTree.from_html(HTML)
        assert event_from_args(tree, {}).collapsed

    def test_no_tree(self) -> None:
        assert event_from_args(None, _payload()).selection is None

    def test_outside_container(self) -> None:
        tree = ContentTree.from_html(HTML)
        event = event_from_args(tree, _payload(inside=False))
        assert not event.inside_container

    def test_unknown_node_index(self) -> None:
        tree = ContentTree.from_html(HTML)
        assert not event_from_args(tree, _payload(node=-1)).inside_container
        assert not event_from_args(tree, _payload(node=3)).inside_container

    def test_malformed_payload(self) -> None:
        tree = ContentTree.from_html(HTML)
        event = event_from_args(tree, _payload(node="2", text=None))
        assert event.selection is None
        assert not event.inside_container


class TestClientPointerUpSource:
    """The per-client source feeds the controller."""

    def test_emit_reaches_controller(self) -> None:
        tree = ContentTree.from_html(HTML)
        selected: list[tuple[str, int, int]] = []
        source = ClientPointerUpSource()
        controller = SelectionController(lambda *args: selected.append(args))
        controller.attach(source)
        controller.set_content(tree)

        source.emit(event_from_args(tree, _payload()))

        assert selected == [("world", 10, 15)]
        assert controller.state is SelectionState.ACCEPTED

    def test_removed_listener_not_called(self) -> None:
        calls: list[PointerUpEvent] = []
        source = ClientPointerUpSource()
        source.add_pointer_up_listener(calls.append)
        source.remove_pointer_up_listener(calls.append)
        source.emit(PointerUpEvent(selection=None, collapsed=True))
        assert calls == []


class TestDisplayText:
    """Selected text is quoted and truncated for the toolbar label."""

    def test_short(self) -> None:
        assert display_text("world") == '"world"'

    def test_truncated(self) -> None:
        text = "x" * (MAX_DISPLAY_LENGTH + 10)
        assert display_text(text) == f'"{"x" * MAX_DISPLAY_LENGTH}..."'


class TestPointerUpScript:
    """The browser walk skips the same elements as the server projection."""

    def test_skip_set_matches_projection(self) -> None:
        script = pointer_up_script(7)
        found = re.search(r"new Set\((\[.*?\])\)", script)
        assert found is not None
        skipped = set(json.loads(found.group(1)))
        assert skipped == {tag.upper() for tag in STRIP_TAGS}
        assert "TITLE" in skipped

    def test_container_id_embedded(self) -> None:
        assert "getHtmlElement(7)" in pointer_up_script(7)

    def test_full_document_title_not_counted(self) -> None:
        tree = ContentTree.from_html(
            "<html><head><title>Doc</title></head><body><p>Doc</p></body></html>"
        )
        assert len(tree.segments) == 1
        selected: list[tuple[str, int, int]] = []
        controller = SelectionController(lambda *args: selected.append(args))
        controller.set_content(tree)

        event = event_from_args(tree, _payload(node=0, offset=0, text="Doc"))
        controller.handle_pointer_up(event)

        assert selected == [("Doc", 0, 3)]


class TestDocumentView:
    """The page view owns a controller bound to its pointer-up source."""

    @staticmethod
    def _view(*, check_overlap: bool = True) -> DocumentView:
        view = DocumentView(document_id=1, content=HTML, check_overlap=check_overlap)
        view.selection_label = MagicMock()
        view.toolbar = MagicMock()
        view.tree = ContentTree.from_html(HTML)
        return view

    def test_controller_built_and_attached(self) -> None:
        view = self._view()
        assert isinstance(view.controller, SelectionController)
        view.controller.set_content(view.tree)

        view.handle_pointer_up(SimpleNamespace(args=_payload()))

        assert view.pending is not None
        assert (view.pending.text, view.pending.start, view.pending.end) == (
            "world",
            10,
            15,
        )
        view.selection_label.set_text.assert_called_once_with('"world" [10, 15)')
        view.toolbar.set_visibility.assert_called_once_with(True)

    def test_overlap_check_disabled(self) -> None:
        view = self._view(check_overlap=False)
        existing = SimpleNamespace(start_offset=8, end_offset=12)
        view.controller.set_content(view.tree, [existing])

        view.handle_pointer_up(SimpleNamespace(args=_payload()))

        assert view.controller.state is SelectionState.ACCEPTED
        assert view.pending is not None

    def test_non_dict_args_ignored(self) -> None:
        view = self._view()
        view.controller.set_content(view.tree)
        view.handle_pointer_up(SimpleNamespace(args=["x"]))
        assert view.pending is None
        assert view.controller.state is SelectionState.IDLE
