"""Self-describing response builder for the MCP tools.

Every response includes contextual ``hints`` showing the client what to do
next, e.g. which pages to import after an analysis.
"""

from __future__ import annotations

import json
from typing import Any


def response(data: dict[str, Any], hints: dict[str, str] | None = None) -> str:
    """Build a JSON response with optional next-step hints."""
    if hints:
        data["hints"] = hints
    return json.dumps(data, indent=2, default=str)


def error(message: str, hints: dict[str, str] | None = None) -> str:
    """Build a JSON error response with hints."""
    return response({"error": message}, hints=hints)


def analysis_hints(archive: str, counts: dict[str, int]) -> dict[str, str]:
    """Hints after an analysis: what an import would do next."""
    h: dict[str, str] = {}
    if counts.get("new", 0) or counts.get("modified", 0):
        h["import_changed"] = f"import_note(archive='{archive}', select='changed')"
    h["import_all"] = f"import_note(archive='{archive}', select='all')"
    h["import_some"] = f"import_note(archive='{archive}', select='pages', pages='1-3')"
    return h


def import_hints(book: str, archive: str, failed: list[int]) -> dict[str, str]:
    """Hints after an import run."""
    h = {"status": f"status(book='{book}')"}
    if failed:
        spec = ",".join(str(n) for n in failed)
        h["retry_failed"] = f"import_note(archive='{archive}', select='pages', pages='{spec}')"
    return h


def book_hints(book: str) -> dict[str, str]:
    """Standard hints for an imported book."""
    return {
        "status": f"status(book='{book}')",
        "reset": f"reset_pages(book='{book}', pages='1-3')",
        "index": f"rebuild_index(book='{book}')",
    }
