"""Document viewer page: select text, flag it, list/export/import flags.

Route: / (default document) and /documents/{document_id}

The browser reports each pointer-up inside the document container as
``(text node index, in-node offset, selection string)``.  Text nodes are
indexed in the same order and with the same exclusions as
``ContentTree``, so the server-side ``SelectionController`` can resolve the
selection against the tree of the HTML currently displayed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nicegui import ui

from flagmark.config import get_settings
from flagmark.csv_io import export_flags_csv, parse_flags_csv
from flagmark.db.documents import get_document
from flagmark.db.flags import (
    create_flag,
    delete_all_flags,
    delete_flag,
    import_flags,
    list_flags,
)
from flagmark.errors import (
    DocumentNotFoundError,
    FlagFormatError,
    FlagValidationError,
    OverlapConflictError,
    SourceAlignmentError,
)
from flagmark.markup.colors import NAMED_COLORS, to_hex
from flagmark.markup.content_tree import STRIP_TAGS, ContentTree, SelectionRange
from flagmark.markup.highlights import render_flags
from flagmark.selection import PointerUpEvent, SelectionController

if TYPE_CHECKING:
    from collections.abc import Callable

    from nicegui.events import GenericEventArguments

    from flagmark.db.models import Flag

logger = logging.getLogger(__name__)

POINTER_UP_EVENT = "flag_pointer_up"
SELECTION_DEBOUNCE_MS = 10  # Let the browser finalise the selection
MAX_DISPLAY_LENGTH = 50

_PAGE_CSS = """
    .doc-container {
        font-family: Georgia, "Times New Roman", serif;
        line-height: 1.6;
        padding: 1rem;
        background: white;
        border: 1px solid #e0e0e0;
        border-radius: 4px;
    }
    .doc-container mark.flag-marker {
        color: inherit;
        padding: 0;
    }
"""

# Client-side pointer-up reporter.  The text-node filter must match
# ContentTree's walk: skip empty nodes and anything inside STRIP_TAGS.
_POINTER_UP_JS = """
    const container = getHtmlElement(%(container_id)s);
    const SKIP = new Set(%(skip_tags)s);

    function textNodes() {
        const walker = document.createTreeWalker(container, NodeFilter.SHOW_TEXT, {
            acceptNode(node) {
                if (!node.data) return NodeFilter.FILTER_REJECT;
                for (let el = node.parentElement; el && el !== container; el = el.parentElement) {
                    if (SKIP.has(el.tagName)) return NodeFilter.FILTER_REJECT;
                }
                return NodeFilter.FILTER_ACCEPT;
            }
        });
        const nodes = [];
        while (walker.nextNode()) nodes.push(walker.currentNode);
        return nodes;
    }

    function resolveStart(range, nodes) {
        let node = range.startContainer;
        let offset = range.startOffset;
        if (node.nodeType !== Node.TEXT_NODE) {
            // Element boundary: start at the first text node at/after it
            const boundary = node.childNodes[offset];
            const AFTER = Node.DOCUMENT_POSITION_FOLLOWING | Node.DOCUMENT_POSITION_CONTAINED_BY;
            node = boundary
                ? nodes.find(n => n === boundary || (boundary.compareDocumentPosition(n) & AFTER))
                : null;
            offset = 0;
        }
        return {node: node ? nodes.indexOf(node) : -1, offset: offset};
    }

    function reportSelection() {
        const selection = window.getSelection();
        if (!selection || selection.rangeCount === 0 || selection.isCollapsed) {
            emitEvent('%(event)s', {collapsed: true});
            return;
        }
        const range = selection.getRangeAt(0);
        const inside = container.contains(range.commonAncestorContainer);
        const start = inside ? resolveStart(range, textNodes()) : {node: -1, offset: 0};
        emitEvent('%(event)s', {
            collapsed: false,
            inside: inside,
            node: start.node,
            offset: start.offset,
            text: selection.toString(),
        });
    }

    container.addEventListener('mouseup', () => setTimeout(reportSelection, %(debounce)s));
    container.setAttribute('data-handlers-ready', 'true');
"""


def pointer_up_script(container_id: int) -> str:
    """Client script reporting pointer-ups inside the container element."""
    return _POINTER_UP_JS % {
        "container_id": container_id,
        "event": POINTER_UP_EVENT,
        "debounce": SELECTION_DEBOUNCE_MS,
        "skip_tags": json.dumps(sorted(tag.upper() for tag in STRIP_TAGS)),
    }


def event_from_args(tree: ContentTree | None, args: dict[str, Any]) -> PointerUpEvent:
    """Translate the browser's pointer-up payload into a ``PointerUpEvent``.

    A node index that does not exist in *tree* is reported as outside the
    container.
    """
    if tree is None or args.get("collapsed", True):
        return PointerUpEvent(selection=None, collapsed=True)

    node = args.get("node")
    offset = args.get("offset")
    text = args.get("text")
    if not (
        isinstance(node, int) and isinstance(offset, int) and isinstance(text, str)
    ):
        return PointerUpEvent(selection=None, inside_container=False)

    segment = tree.segment_at(node)
    if segment is None or not args.get("inside", False):
        return PointerUpEvent(selection=None, inside_container=False)

    return PointerUpEvent(selection=SelectionRange(segment, offset, text))


def display_text(text: str) -> str:
    """Quote and truncate selected text for display."""
    if len(text) > MAX_DISPLAY_LENGTH:
        return f'"{text[:MAX_DISPLAY_LENGTH]}..."'
    return f'"{text}"'


class ClientPointerUpSource:
    """Fans browser pointer-up events out to registered handlers."""

    def __init__(self) -> None:
        self._handlers: list[Callable[[PointerUpEvent], Any]] = []

    def add_pointer_up_listener(self, handler: Callable[[PointerUpEvent], Any]) -> None:
        self._handlers.append(handler)

    def remove_pointer_up_listener(
        self, handler: Callable[[PointerUpEvent], Any]
    ) -> None:
        self._handlers.remove(handler)

    def emit(self, event: PointerUpEvent) -> None:
        for handler in list(self._handlers):
            handler(event)


@dataclass
class _PendingSelection:
    text: str = ""
    start: int = 0
    end: int = 0


@dataclass
class DocumentView:
    """Per-client state for one document page."""

    document_id: int
    content: str
    check_overlap: bool = True
    flags: list[Flag] = field(default_factory=list)
    tree: ContentTree | None = None
    pending: _PendingSelection | None = None
    source: ClientPointerUpSource = field(default_factory=ClientPointerUpSource)
    controller: SelectionController = field(init=False)
    signature: tuple[tuple[Any, ...], ...] = ()
    content_el: Any = None
    toolbar: Any = None
    selection_label: Any = None
    flag_list: Any = None

    def __post_init__(self) -> None:
        self.controller = SelectionController(
            self.on_text_select,
            on_overlap=self.on_overlap,
            check_overlap=self.check_overlap,
        )
        self.controller.attach(self.source)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def on_text_select(self, text: str, start: int, end: int) -> None:
        self.pending = _PendingSelection(text, start, end)
        self.selection_label.set_text(f"{display_text(text)} [{start}, {end})")
        self.toolbar.set_visibility(True)

    def on_overlap(self, message: str) -> None:
        self.clear_pending()
        ui.notify(message, type="negative")

    def clear_pending(self) -> None:
        self.pending = None
        if self.toolbar is not None:
            self.toolbar.set_visibility(False)

    def handle_pointer_up(self, e: GenericEventArguments) -> None:
        args = e.args if isinstance(e.args, dict) else {}
        self.source.emit(event_from_args(self.tree, args))

    # ------------------------------------------------------------------
    # Flag actions
    # ------------------------------------------------------------------

    async def flag_selection(self, color: str) -> None:
        pending = self.pending
        if pending is None:
            ui.notify("No text selected", type="warning")
            return
        try:
            await create_flag(
                self.document_id, pending.text, color, pending.start, pending.end
            )
        except OverlapConflictError:
            ui.notify("Selection overlaps an existing flag", type="negative")
        except FlagValidationError as exc:
            ui.notify(str(exc), type="warning")
        self.clear_pending()
        await self.refresh(force=True)

    async def remove_flag(self, flag_id: int | None) -> None:
        if flag_id is not None:
            await delete_flag(flag_id)
        await self.refresh(force=True)

    async def clear_flags(self) -> None:
        count = await delete_all_flags(self.document_id)
        ui.notify(f"Removed {count} flag(s)")
        await self.refresh(force=True)

    def export_csv(self) -> None:
        ui.download.content(
            export_flags_csv(self.flags).encode("utf-8"),
            f"document-{self.document_id}-flags.csv",
            "text/csv",
        )

    async def handle_upload(self, e: Any) -> None:
        raw = await e.file.read()
        try:
            count = await import_flags(
                self.document_id, parse_flags_csv(raw.decode("utf-8"))
            )
        except (FlagFormatError, UnicodeDecodeError) as exc:
            ui.notify(f"Import failed: {exc}", type="negative")
            return
        ui.notify(f"Imported {count} flag(s)", type="positive")
        await self.refresh(force=True)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def refresh(self, force: bool = False) -> None:
        """Re-read flags and re-render from the canonical content."""
        flags = await list_flags(self.document_id)
        signature = tuple((f.id, f.start_offset, f.end_offset, f.color) for f in flags)
        if not force and signature == self.signature:
            return
        self.flags = flags
        self.signature = signature

        rendered = render_flags(self.content, flags)
        self.content_el.set_content(rendered)
        try:
            self.tree = ContentTree.from_html(rendered)
        except SourceAlignmentError:
            logger.warning(
                "Document %s cannot be aligned; selection disabled", self.document_id
            )
            self.tree = None
        self.controller.set_content(self.tree, flags)
        self._render_flag_list()

    def _render_flag_list(self) -> None:
        self.flag_list.clear()
        with self.flag_list:
            if not self.flags:
                ui.label("No flags yet").classes("text-sm text-grey")
            for flag in self.flags:
                with (
                    ui.row()
                    .classes("w-full items-start no-wrap gap-2 p-2 rounded border")
                    .style(f"border-color: {to_hex(flag.color)}")
                ):
                    ui.label(flag.text).classes("text-sm flex-1")
                    ui.button(
                        icon="delete",
                        on_click=lambda _e, fid=flag.id: self.remove_flag(fid),
                    ).props("flat dense size=sm").props(
                        f'data-testid="delete-flag-{flag.id}"'
                    )


async def _build_page(document_id: int) -> None:
    try:
        document = await get_document(document_id)
    except DocumentNotFoundError:
        ui.label(f"Document {document_id} not found").classes("text-h6")
        return

    settings = get_settings()
    view = DocumentView(
        document_id=document_id,
        content=document.content,
        check_overlap=settings.flags.check_overlap_on_select,
    )

    ui.add_css(_PAGE_CSS)

    with ui.row().classes("w-full gap-4 no-wrap"):
        with ui.card().classes("w-3/4"):
            with ui.row().classes("items-center gap-2") as toolbar:
                view.selection_label = ui.label("").classes("text-sm")
                for color in NAMED_COLORS:
                    ui.button(
                        color.capitalize(),
                        on_click=lambda _e, c=color: view.flag_selection(c),
                    ).props(f'flat dense data-testid="flag-{color}"').style(
                        f"color: {to_hex(color)}"
                    )
                ui.button(icon="close", on_click=view.clear_pending).props("flat dense")
            view.toolbar = toolbar
            toolbar.set_visibility(False)

            view.content_el = (
                ui.html("", sanitize=False)
                .classes("doc-container w-full")
                .props('data-testid="document-content"')
            )

        with ui.card().classes("w-1/4"):
            ui.label("Flagged Text").classes("text-h6")
            with ui.row().classes("gap-1"):
                ui.button("Export CSV", on_click=view.export_csv).props("flat dense")
                ui.button("Clear all", on_click=view.clear_flags).props(
                    'flat dense color=negative data-testid="clear-flags"'
                )
            ui.upload(
                label="Import CSV",
                on_upload=view.handle_upload,
                auto_upload=True,
            ).props('accept=".csv"').classes("w-full")
            view.flag_list = ui.column().classes("w-full gap-2")

    await view.refresh(force=True)

    ui.on(POINTER_UP_EVENT, view.handle_pointer_up)
    ui.timer(settings.flags.refresh_seconds, view.refresh)

    client = ui.context.client
    client.on_disconnect(view.controller.teardown)

    await client.connected()
    await ui.run_javascript(pointer_up_script(view.content_el.id))


@ui.page("/")
async def index_page() -> None:
    """Viewer for the default (seeded) document."""
    await _build_page(get_settings().app.default_document_id)


@ui.page("/documents/{document_id}")
async def document_page(document_id: int) -> None:
    """Viewer for a specific document."""
    await _build_page(document_id)
