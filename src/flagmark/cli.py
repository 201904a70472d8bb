"""Admin commands for flagmark documents and flags.

Usage:
    uv run flagmark-admin init-db
    uv run flagmark-admin export 1 --output flags.csv
    uv run flagmark-admin import 1 flags.csv
    uv run flagmark-admin clear 1
    uv run flagmark-admin render 1 --output flagged.html
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from flagmark.errors import DocumentNotFoundError, FlagFormatError

console = Console()


async def _ready() -> None:
    """Initialise the engine and make sure the tables exist."""
    from flagmark.db import create_schema, get_engine, init_db

    await init_db()
    await create_schema(get_engine())


async def _init_db() -> None:
    from flagmark.db import close_db

    try:
        await _ready()
    finally:
        await close_db()
    console.print("[green]Schema ready.[/]")


async def _export(document_id: int, output: Path | None) -> None:
    from flagmark.csv_io import export_flags_csv
    from flagmark.db import close_db, list_flags

    try:
        await _ready()
        flags = await list_flags(document_id)
    finally:
        await close_db()

    csv_text = export_flags_csv(flags)
    if output is None:
        sys.stdout.write(csv_text)
        return
    output.write_text(csv_text, encoding="utf-8")
    console.print(f"Exported [bold]{len(flags)}[/] flag(s) to {output}")


async def _import(document_id: int, path: Path) -> None:
    from flagmark.csv_io import parse_flags_csv
    from flagmark.db import close_db, import_flags

    rows = parse_flags_csv(path.read_text(encoding="utf-8"))
    try:
        await _ready()
        count = await import_flags(document_id, rows)
    finally:
        await close_db()
    console.print(f"Imported [bold]{count}[/] flag(s) into document {document_id}")


async def _clear(document_id: int) -> None:
    from flagmark.db import close_db, delete_all_flags

    try:
        await _ready()
        count = await delete_all_flags(document_id)
    finally:
        await close_db()
    console.print(f"Removed [bold]{count}[/] flag(s) from document {document_id}")


async def _render(document_id: int, output: Path | None) -> None:
    from flagmark.db import close_db, get_document, list_flags
    from flagmark.markup.highlights import render_flags

    try:
        await _ready()
        document = await get_document(document_id)
        flags = await list_flags(document_id)
    finally:
        await close_db()

    rendered = render_flags(document.content, flags)
    if output is None:
        sys.stdout.write(rendered)
        return
    output.write_text(rendered, encoding="utf-8")

    table = Table("Color", "Range", "Text")
    for flag in flags:
        span = f"[{flag.start_offset}, {flag.end_offset})"
        table.add_row(flag.color, span, escape(flag.text))
    console.print(table)
    console.print(f"Wrote {output}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flagmark-admin",
        description="Manage flagmark documents and flags.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables.")

    export = sub.add_parser("export", help="Export a document's flags as CSV.")
    export.add_argument("document_id", type=int)
    export.add_argument("--output", "-o", type=Path, default=None)

    imp = sub.add_parser("import", help="Import flags from a CSV file.")
    imp.add_argument("document_id", type=int)
    imp.add_argument("path", type=Path)

    clear = sub.add_parser("clear", help="Delete all flags on a document.")
    clear.add_argument("document_id", type=int)

    render = sub.add_parser("render", help="Write the document HTML with flag markers.")
    render.add_argument("document_id", type=int)
    render.add_argument("--output", "-o", type=Path, default=None)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for flagmark-admin."""
    args = _build_parser().parse_args(argv)

    match args.command:
        case "init-db":
            coro = _init_db()
        case "export":
            coro = _export(args.document_id, args.output)
        case "import":
            coro = _import(args.document_id, args.path)
        case "clear":
            coro = _clear(args.document_id)
        case "render":
            coro = _render(args.document_id, args.output)
        case _:  # pragma: no cover - argparse enforces the choices
            raise SystemExit(2)

    try:
        asyncio.run(coro)
    except (DocumentNotFoundError, FlagFormatError, OSError) as exc:
        console.print(f"[red]Error:[/] {exc}")
        sys.exit(1)
