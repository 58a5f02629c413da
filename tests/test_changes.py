"""Tests for inkport.changes."""

from dataclasses import replace

from conftest import fake_png
from inkport.book import AudioClip, Book, Page
from inkport.changes import ChangeKind, analyze_changes, classify, resolve_baselines
from inkport.fingerprint import Digest, RecoveredPlaceholder, ResetPlaceholder, fingerprint_bytes
from inkport.manifest import PageRecord, new_manifest


def _book(*pages: tuple[int, bytes], audio_on: tuple[int, ...] = ()) -> Book:
    built = [
        Page.create(n, data, audio=AudioClip("audio/x.m4a", b"a") if n in audio_on else None)
        for n, data in pages
    ]
    return Book(name="Book", source_file="Book.note", generation=1, pages=tuple(built))


def _manifest(**pages: str):
    records = {
        int(k[1:]): PageRecord(output_file=f"Book_page_{k[1:]}.md", imported_at="t", image_hash=v)
        for k, v in pages.items()
    }
    return replace(new_manifest("Book"), pages=records, total_pages=len(records))


class TestClassify:
    def test_no_baseline_is_new(self):
        assert classify(None, Digest("a")) == ChangeKind.NEW

    def test_equal_is_unchanged(self):
        assert classify(Digest("a"), Digest("a")) == ChangeKind.UNCHANGED

    def test_sentinels_force_modified(self):
        fp = fingerprint_bytes(b"x")
        assert classify(RecoveredPlaceholder(1, 1), fp) == ChangeKind.MODIFIED
        assert classify(ResetPlaceholder("t"), fp) == ChangeKind.MODIFIED


class TestAnalyzeChanges:
    def test_no_manifest_everything_new(self):
        a = analyze_changes(_book((1, fake_png("1")), (2, fake_png("2"))), None)
        assert a.bootstrap
        assert a.pages(ChangeKind.NEW) == [1, 2]
        assert a.pages(ChangeKind.DELETED) == []

    def test_mixed(self):
        h1 = str(fingerprint_bytes(fake_png("1")))
        manifest = _manifest(p1=h1, p2="0000000000000000", p3="1111111111111111")
        book = _book((1, fake_png("1")), (2, fake_png("2 edited")), (4, fake_png("4")))
        a = analyze_changes(book, manifest)
        assert a.pages(ChangeKind.UNCHANGED) == [1]
        assert a.pages(ChangeKind.MODIFIED) == [2]
        assert a.pages(ChangeKind.NEW) == [4]
        assert a.pages(ChangeKind.DELETED) == [3]
        assert a.counts == {"new": 1, "modified": 1, "unchanged": 1, "deleted": 1}

    def test_example_scenario(self):
        # manifest {1: h1, 2: h2, 3: h3}; archive has 1 unchanged and 2 changed
        h1, h2, h3 = (str(fingerprint_bytes(fake_png(t))) for t in ("1", "2", "3"))
        manifest = _manifest(p1=h1, p2=h2, p3=h3)
        a = analyze_changes(_book((1, fake_png("1")), (2, fake_png("2b"))), manifest)
        assert a.to_dict()["new"] == []
        assert a.to_dict()["modified"] == [2]
        assert a.to_dict()["unchanged"] == [1]
        assert a.to_dict()["deleted"] == [3]

    def test_sentinel_baseline_with_same_bytes_is_modified(self):
        manifest = _manifest(p1="recovered-10-20", p2="RESET-2024")
        a = analyze_changes(_book((1, fake_png("1")), (2, fake_png("2"))), manifest)
        assert a.pages(ChangeKind.MODIFIED) == [1, 2]

    def test_embedded_fingerprint_preferred(self):
        h1 = str(fingerprint_bytes(fake_png("1")))
        manifest = _manifest(p1="ffffffffffffffff")
        embedded = {1: Digest(h1)}
        a = analyze_changes(_book((1, fake_png("1"))), manifest, embedded)
        assert a.pages(ChangeKind.UNCHANGED) == [1]

    def test_audio_flip_flagged(self):
        h1 = str(fingerprint_bytes(fake_png("1")))
        manifest = _manifest(p1=h1)
        a = analyze_changes(_book((1, fake_png("1")), audio_on=(1,)), manifest)
        change = a.change(1)
        assert change.kind == ChangeKind.UNCHANGED
        assert change.audio_changed

    def test_deterministic_and_ordered(self):
        manifest = _manifest(p5="a" * 16, p2="b" * 16)
        book = _book((9, fake_png("9")), (1, fake_png("1")), (5, fake_png("5")))
        first = analyze_changes(book, manifest)
        second = analyze_changes(book, manifest)
        assert first == second
        assert [c.page for c in first.changes] == [1, 2, 5, 9]


class TestResolveBaselines:
    def test_manifest_only(self):
        baselines = resolve_baselines(_manifest(p1="a" * 16))
        assert baselines == {1: Digest("a" * 16)}

    def test_none(self):
        assert resolve_baselines(None) == {}
