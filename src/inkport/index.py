"""Book index document: ``<book>/<book>.md``.

A summary view regenerated from the manifest after every run.  It is a
pure function of the manifest and always overwrites the previous index.
"""

from __future__ import annotations

import logging

import yaml

from inkport.config import ImportConfig
from inkport.manifest import Manifest
from inkport.paths import BookLayout
from inkport.storage import Storage

logger = logging.getLogger(__name__)

GRID_COLUMNS = 4


def _link(path: str) -> str:
    return path.replace(" ", "%20")


def render_index(manifest: Manifest, layout: BookLayout, config: ImportConfig | None = None) -> str:
    """Render the index document for *manifest*."""
    config = config or ImportConfig()
    numbers = sorted(manifest.pages)
    meta = {
        "book": manifest.book_name,
        "total_pages": manifest.total_pages,
        "imported_pages": len(numbers),
        "last_import": manifest.last_import,
        "source": manifest.source_file,
        "tags": ["handwritten", "inkport", "index"],
    }
    lines = [
        "---",
        yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).rstrip("\n"),
        "---",
        "",
        f"# {manifest.book_name}",
        "",
        f"- Pages in last import: {manifest.total_pages}",
        f"- Pages imported: {len(numbers)}",
        f"- Last import: {manifest.last_import or 'never'}",
        "",
        "## Pages",
        "",
        "| Page | Audio | Transcribed | Imported |",
        "| ---: | :---: | :---: | --- |",
    ]
    for n in numbers:
        rec = manifest.pages[n]
        doc = rec.output_file or layout.page_doc_name(n)
        lines.append(
            f"| [{n}]({_link(doc)}) | {'yes' if rec.has_audio else ''} | "
            f"{'yes' if rec.transcribed else ''} | {rec.imported_at[:10]} |"
        )
    lines.append("")

    if config.wants_png and numbers:
        lines += ["## Overview", ""]
        for start in range(0, len(numbers), GRID_COLUMNS):
            row = numbers[start : start + GRID_COLUMNS]
            cells = [
                f"[![{n}]({_link(layout.relative(layout.image_path(n)))})]"
                f"({_link(manifest.pages[n].output_file or layout.page_doc_name(n))})"
                for n in row
            ]
            lines.append(" ".join(cells))
        lines.append("")

    if manifest.history:
        lines += ["## Recent imports", ""]
        for entry in manifest.history[:10]:
            lines.append(f"- {entry.timestamp[:19]} {entry.action}: {entry.summary}")
        lines.append("")

    return "\n".join(lines)


def write_index(
    storage: Storage, layout: BookLayout, manifest: Manifest, config: ImportConfig | None = None
) -> str:
    """Overwrite the book's index document.  Returns its path."""
    storage.ensure_dir(layout.book_dir)
    storage.write_text(layout.index_path, render_index(manifest, layout, config))
    logger.debug("Index for '%s' written to %s", manifest.book_name, layout.index_path)
    return layout.index_path
