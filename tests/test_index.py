"""Tests for inkport.index."""

from dataclasses import replace

from inkport.config import ImportConfig
from inkport.index import render_index, write_index
from inkport.manifest import HistoryEntry, PageRecord, new_manifest
from inkport.page_doc import parse_front_matter
from inkport.paths import BookLayout

LAYOUT = BookLayout("Handwritten Notes", "Field Notes")


def _manifest():
    pages = {
        n: PageRecord(
            output_file=LAYOUT.page_doc_name(n),
            imported_at="2024-03-01T10:00:00+00:00",
            image_hash="0" * 16,
            has_audio=n == 2,
            transcribed=n == 1,
        )
        for n in (1, 2, 5)
    }
    return replace(
        new_manifest("Field Notes", "Field Notes.note"),
        total_pages=5,
        pages=pages,
        last_import="2024-03-01T10:00:00+00:00",
        history=(HistoryEntry("2024-03-01T10:00:00+00:00", "import", (1, 2, 5), "3 pages requested"),),
    )


class TestRenderIndex:
    def test_front_matter(self):
        meta = parse_front_matter(render_index(_manifest(), LAYOUT))
        assert meta["book"] == "Field Notes"
        assert meta["imported_pages"] == 3
        assert "index" in meta["tags"]

    def test_page_rows(self):
        text = render_index(_manifest(), LAYOUT)
        assert "| [1](Field%20Notes_page_001.md) |  | yes | 2024-03-01 |" in text
        assert "| [2](Field%20Notes_page_002.md) | yes |  | 2024-03-01 |" in text
        assert "[5](Field%20Notes_page_005.md)" in text

    def test_image_grid_only_for_png(self):
        assert "## Overview" in render_index(_manifest(), LAYOUT)
        svg = ImportConfig(output_format="svg")
        assert "## Overview" not in render_index(_manifest(), LAYOUT, svg)

    def test_history(self):
        assert "import: 3 pages requested" in render_index(_manifest(), LAYOUT)

    def test_pure(self):
        assert render_index(_manifest(), LAYOUT) == render_index(_manifest(), LAYOUT)


class TestWriteIndex:
    def test_overwrites(self, storage):
        storage.ensure_dir(LAYOUT.book_dir)
        storage.write_text(LAYOUT.index_path, "stale")
        path = write_index(storage, LAYOUT, _manifest())
        assert path == LAYOUT.index_path
        assert storage.read_text(path).startswith("---\n")
