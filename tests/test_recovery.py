"""Tests for inkport.recovery."""

from inkport.fingerprint import RecoveredPlaceholder, parse_fingerprint
from inkport.manifest import load_manifest
from inkport.page_doc import PageDocument, render_page_document
from inkport.paths import BookLayout
from inkport.recovery import recover_manifest

LAYOUT = BookLayout("Handwritten Notes", "Field Notes")


def _write_page(storage, page: int, *, audio: bool = False, transcription: str | None = None):
    storage.ensure_dir(LAYOUT.images_dir)
    doc = PageDocument(
        book="Field Notes",
        page=page,
        total_pages=9,
        image_hash="0123456789abcdef",
        audio_link="audio/x.m4a" if audio else "",
        transcription=transcription,
    )
    storage.write_text(LAYOUT.page_doc_path(page), render_page_document(doc))
    storage.write_bytes(LAYOUT.image_path(page), b"x" * (100 + page))


class TestRecoverManifest:
    def test_nothing_on_disk(self, storage):
        assert recover_manifest(storage, LAYOUT) is None
        assert not storage.exists(LAYOUT.manifest_path)

    def test_rebuilds_and_persists(self, storage):
        _write_page(storage, 1)
        _write_page(storage, 4, audio=True, transcription="hello")

        m = recover_manifest(storage, LAYOUT, source_file="Field Notes.note")
        assert sorted(m.pages) == [1, 4]
        assert m.total_pages == 4
        assert m.pages[4].has_audio
        assert m.pages[4].transcribed
        assert not m.pages[1].transcribed
        assert m.history[0].action == "recovered"
        assert load_manifest(storage, LAYOUT.manifest_path) == m

    def test_fingerprints_are_sentinels_from_image(self, storage):
        _write_page(storage, 2)
        m = recover_manifest(storage, LAYOUT)
        fp = parse_fingerprint(m.pages[2].image_hash)
        assert isinstance(fp, RecoveredPlaceholder)
        assert fp.size == 102

    def test_falls_back_to_document_stat(self, storage):
        _write_page(storage, 1)
        storage.delete(LAYOUT.image_path(1))
        m = recover_manifest(storage, LAYOUT)
        fp = parse_fingerprint(m.pages[1].image_hash)
        assert fp.size == storage.stat(LAYOUT.page_doc_path(1)).size

    def test_ignores_non_matching_files(self, storage):
        _write_page(storage, 1)
        storage.write_text(f"{LAYOUT.book_dir}/Field Notes_page_1.md", "loose")
        storage.write_text(f"{LAYOUT.book_dir}/notes.md", "other")
        m = recover_manifest(storage, LAYOUT)
        assert list(m.pages) == [1]
