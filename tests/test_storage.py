"""Tests for inkport.storage and inkport.paths."""

import pytest

from inkport.paths import BookLayout, page_doc_pattern, page_stem, sanitize_name
from inkport.storage import join, parent_of


class TestLocalStorage:
    def test_write_requires_existing_folder(self, storage):
        with pytest.raises(FileNotFoundError):
            storage.write_text("missing/dir/file.md", "x")

    def test_write_and_read(self, storage):
        storage.ensure_dir("a")
        storage.write_text("a/f.md", "hello")
        assert storage.read_text("a/f.md") == "hello"
        assert not storage.exists("a/f.md.tmp")

    def test_direct_write_creates_parents(self, storage):
        storage.write_text_direct("x/y/z.json", "{}")
        assert storage.read_text("x/y/z.json") == "{}"

    def test_list_dir_missing_is_empty(self, storage):
        assert storage.list_dir("nowhere") == []

    def test_list_dir_sorted(self, storage):
        storage.ensure_dir("d")
        for name in ("b", "a", "c"):
            storage.write_bytes(f"d/{name}", b"")
        assert storage.list_dir("d") == ["a", "b", "c"]

    def test_rejects_escape(self, storage):
        with pytest.raises(ValueError):
            storage.read_text("../outside")
        with pytest.raises(ValueError):
            storage.read_text("/etc/passwd")

    def test_ensure_dir_idempotent(self, storage):
        storage.ensure_dir("a/b")
        storage.ensure_dir("a/b")
        assert storage.exists("a/b")

    def test_stat_and_delete(self, storage):
        storage.ensure_dir("s")
        storage.write_bytes("s/f", b"12345")
        assert storage.stat("s/f").size == 5
        storage.delete("s/f")
        assert not storage.exists("s/f")
        storage.delete("s/f")  # missing is fine


class TestPathHelpers:
    def test_join_skips_empty(self):
        assert join("a", "", "b/", "/c") == "a/b/c"

    def test_parent_of(self):
        assert parent_of("a/b/c.json") == "a/b"
        assert parent_of("c.json") == ""

    def test_page_stem_zero_padded(self):
        assert page_stem("Book", 7) == "Book_page_007"
        assert page_stem("Book", 1234) == "Book_page_1234"

    def test_sanitize(self):
        assert sanitize_name(' My:Book?* ') == "MyBook"

    def test_page_doc_pattern_strict(self):
        pat = page_doc_pattern("My Book")
        assert pat.match("My Book_page_012.md").group(1) == "012"
        assert pat.match("My Book_page_12.md") is None
        assert pat.match("Other_page_012.md") is None
        assert pat.match("My Book_page_012.md.bak") is None


class TestBookLayout:
    def test_paths(self):
        layout = BookLayout("Handwritten Notes", "Field Notes")
        assert layout.book_dir == "Handwritten Notes/Field Notes"
        assert layout.manifest_path == "Handwritten Notes/Field Notes/.inkport/manifest.json"
        assert layout.index_path == "Handwritten Notes/Field Notes/Field Notes.md"
        assert layout.image_path(3) == "Handwritten Notes/Field Notes/images/Field Notes_page_003.png"
        assert layout.audio_path(3, ".aac").endswith("audio/Field Notes_page_003.aac")

    def test_relative(self):
        layout = BookLayout("N", "B")
        assert layout.relative(layout.image_path(1)) == "images/B_page_001.png"
