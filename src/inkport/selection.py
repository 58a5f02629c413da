"""Canned page selections.

The decision of *which* pages to import belongs to the caller (a CLI flag,
an MCP tool argument, a UI).  This module only computes the usual subsets
and parses explicit page specs such as ``"1-3,7"``.  An empty selection is
valid and means there is nothing to do.
"""

from __future__ import annotations

from inkport.book import Book
from inkport.changes import ChangeAnalysis, ChangeKind
from inkport.errors import SelectionError

MODES = ("new", "modified", "changed", "all", "range", "pages")

# Accepted spellings for the new+modified subset
_CHANGED_ALIASES = {"changed", "new+modified", "new_modified"}


def parse_page_spec(spec: str) -> list[int]:
    """Parse ``"1-3, 7,9-10"`` into a sorted, de-duplicated page list."""
    pages: set[int] = set()
    for part in spec.replace(" ", "").split(","):
        if not part:
            continue
        start_s, sep, end_s = part.partition("-")
        try:
            start = int(start_s)
            end = int(end_s) if sep else start
        except ValueError as e:
            raise SelectionError(spec, f"'{part}' is not a page number or range") from e
        if start < 1 or end < 1:
            raise SelectionError(spec, "page numbers start at 1")
        if end < start:
            raise SelectionError(spec, f"range '{part}' runs backwards")
        pages.update(range(start, end + 1))
    return sorted(pages)


def select_pages(book: Book, analysis: ChangeAnalysis, mode: str, pages: str = "") -> list[int]:
    """Page numbers of *book* to act on.

    Args:
        book: The decoded book; selections never include pages it lacks.
        analysis: Change analysis for the book.
        mode: new | modified | changed (new+modified) | all | range | pages.
        pages: Page spec for ``range`` / ``pages`` modes.
    """
    mode = mode.strip().lower()
    available = set(book.page_numbers)

    if mode == "new":
        chosen = set(analysis.pages(ChangeKind.NEW))
    elif mode == "modified":
        chosen = set(analysis.pages(ChangeKind.MODIFIED))
    elif mode in _CHANGED_ALIASES:
        chosen = set(analysis.pages(ChangeKind.NEW)) | set(analysis.pages(ChangeKind.MODIFIED))
    elif mode == "all":
        chosen = available
    elif mode in ("range", "pages"):
        if not pages.strip():
            raise SelectionError(pages, f"mode '{mode}' needs a page list")
        chosen = set(parse_page_spec(pages))
    else:
        raise SelectionError(mode, f"unknown mode; expected one of {', '.join(MODES)}")

    return sorted(chosen & available)
