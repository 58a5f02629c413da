#!/usr/bin/env python3
"""Command-line interface for importing handwritten note archives.

Usage:
    # Write a starter inkport.yaml into the library root
    inkport --root ~/Notes init

    # Show what an import would do
    inkport --root ~/Notes analyze MyBook.note

    # Import new and modified pages (default), or an explicit selection
    inkport --root ~/Notes import MyBook.note
    inkport --root ~/Notes import MyBook.note --select pages --pages 1-3,7

    # Force pages to be re-imported next time
    inkport --root ~/Notes reset MyBook --pages 2,5

    # Manifest summary, index regeneration, manifest recovery
    inkport --root ~/Notes status MyBook
    inkport --root ~/Notes index MyBook
    inkport --root ~/Notes recover MyBook
"""

from __future__ import annotations

import argparse
import functools
import json
import logging
import sys
from pathlib import Path

import anyio

from inkport import __version__
from inkport.config import ImportConfig, create_default, load_config
from inkport.errors import InkportError
from inkport.ingest import (
    book_status,
    import_archive,
    layout_for,
    load_or_recover,
    prepare_import,
    rebuild_index,
    reset_book_pages,
)
from inkport.paths import sanitize_name
from inkport.selection import MODES, parse_page_spec
from inkport.storage import LocalStorage
from inkport.transcribe import build_transcriber

logger = logging.getLogger("inkport.cli")


def _context(args: argparse.Namespace) -> tuple[LocalStorage, ImportConfig]:
    root = Path(args.root)
    return LocalStorage(root), load_config(root)


def cmd_init(args: argparse.Namespace) -> int:
    """Write a starter config file."""
    path = create_default(Path(args.root))
    print(f"Config: {path}")
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    """Classify the pages of an archive against the library."""
    storage, config = _context(args)
    prepared = prepare_import(Path(args.archive), storage, config)
    analysis = prepared.analysis
    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2))
        return 0

    print(f"Book: {prepared.book.name} ({len(prepared.book.pages)} pages)")
    if analysis.bootstrap:
        print("  No previous import found; every page is new.")
    if prepared.recovered:
        print("  Manifest was missing and has been rebuilt from page files.")
    for kind, count in analysis.counts.items():
        pages = [c.page for c in analysis.changes if c.kind.value == kind]
        listed = f"  {pages}" if pages else ""
        print(f"  {kind:<10} {count:>4}{listed}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import the selected pages of an archive."""
    storage, config = _context(args)
    summary = anyio.run(
        functools.partial(
            import_archive,
            Path(args.archive),
            storage,
            config,
            select=args.select,
            pages=args.pages,
            transcriber=build_transcriber(config),
        )
    )
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
    else:
        print(f"Book: {summary.book}")
        print(f"  {summary.describe()}")
        print(f"  Artifacts written: {summary.artifacts_written}")
        if summary.backup_path:
            print(f"  Manifest backup: {summary.backup_path}")
        if summary.index_path:
            print(f"  Index: {summary.index_path}")
        if summary.cancelled:
            print(f"  Cancelled; skipped pages {summary.skipped_pages}")
        for err in summary.errors:
            print(f"  Page {err.page} failed: {err.message}")
    return 1 if summary.errors else 0


def cmd_reset(args: argparse.Namespace) -> int:
    """Invalidate pages so the next import rewrites them."""
    storage, config = _context(args)
    pages = parse_page_spec(args.pages) if args.pages else None
    done = reset_book_pages(storage, config, args.book, pages)
    if done:
        print(f"Reset {len(done)} pages of '{args.book}': {done}")
    else:
        print(f"No matching pages to reset in '{args.book}'")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show the manifest summary of a book."""
    storage, config = _context(args)
    print(json.dumps(book_status(storage, config, args.book), indent=2))
    return 0


def cmd_index(args: argparse.Namespace) -> int:
    """Regenerate a book's index document."""
    storage, config = _context(args)
    print(f"Index: {rebuild_index(storage, config, args.book)}")
    return 0


def cmd_recover(args: argparse.Namespace) -> int:
    """Rebuild a missing manifest from the page documents on disk."""
    storage, config = _context(args)
    layout = layout_for(config, sanitize_name(args.book))
    manifest, recovered = load_or_recover(storage, layout, config)
    if manifest is None:
        print(f"No page documents found for '{args.book}' under {layout.book_dir}")
        return 1
    if recovered:
        print(f"Recovered manifest with {len(manifest.pages)} pages: {layout.manifest_path}")
    else:
        print(f"Manifest already present ({len(manifest.pages)} pages); nothing to recover")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import handwritten note archives into a Markdown library",
        prog="inkport",
    )
    parser.add_argument("--root", default=".", help="Library root folder (default: cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    # init
    p = sub.add_parser("init", help="Write a starter inkport.yaml")
    p.set_defaults(func=cmd_init)

    # analyze
    p = sub.add_parser("analyze", help="Show which pages are new, modified or unchanged")
    p.add_argument("archive", help="Path to the .note archive")
    p.add_argument("--json", action="store_true", help="Machine-readable output")
    p.set_defaults(func=cmd_analyze)

    # import
    p = sub.add_parser("import", help="Import pages from an archive")
    p.add_argument("archive", help="Path to the .note archive")
    p.add_argument("--select", default="changed", choices=MODES, help="Page selection")
    p.add_argument("--pages", default="", help="Page spec for range/pages, e.g. 1-3,7")
    p.add_argument("--json", action="store_true", help="Machine-readable output")
    p.set_defaults(func=cmd_import)

    # reset
    p = sub.add_parser("reset", help="Force pages to be re-imported")
    p.add_argument("book", help="Book name")
    p.add_argument("--pages", default="", help="Page spec (default: all pages)")
    p.set_defaults(func=cmd_reset)

    # status
    p = sub.add_parser("status", help="Show the import manifest of a book")
    p.add_argument("book", help="Book name")
    p.set_defaults(func=cmd_status)

    # index
    p = sub.add_parser("index", help="Regenerate the index document of a book")
    p.add_argument("book", help="Book name")
    p.set_defaults(func=cmd_index)

    # recover
    p = sub.add_parser("recover", help="Rebuild a lost manifest from page files")
    p.add_argument("book", help="Book name")
    p.set_defaults(func=cmd_recover)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return args.func(args)
    except InkportError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
