"""Tests for inkport.selection."""

import pytest

from conftest import fake_png
from inkport.book import Book, Page
from inkport.changes import ChangeAnalysis, ChangeKind, PageChange
from inkport.errors import SelectionError
from inkport.selection import parse_page_spec, select_pages

BOOK = Book(
    name="B",
    source_file="B.note",
    generation=1,
    pages=tuple(Page.create(n, fake_png(str(n))) for n in (1, 2, 3, 5)),
)
ANALYSIS = ChangeAnalysis(
    book="B",
    changes=(
        PageChange(1, ChangeKind.UNCHANGED),
        PageChange(2, ChangeKind.MODIFIED),
        PageChange(3, ChangeKind.NEW),
        PageChange(4, ChangeKind.DELETED),
        PageChange(5, ChangeKind.NEW),
    ),
)


class TestParsePageSpec:
    def test_ranges_and_singles(self):
        assert parse_page_spec("1-3, 7,9-10") == [1, 2, 3, 7, 9, 10]

    def test_dedup(self):
        assert parse_page_spec("2,2,1-2") == [1, 2]

    @pytest.mark.parametrize("spec", ["a", "3-1", "0", "1-x"])
    def test_invalid(self, spec):
        with pytest.raises(SelectionError):
            parse_page_spec(spec)


class TestSelectPages:
    def test_new(self):
        assert select_pages(BOOK, ANALYSIS, "new") == [3, 5]

    def test_modified(self):
        assert select_pages(BOOK, ANALYSIS, "modified") == [2]

    def test_changed(self):
        assert select_pages(BOOK, ANALYSIS, "changed") == [2, 3, 5]
        assert select_pages(BOOK, ANALYSIS, "new+modified") == [2, 3, 5]

    def test_all(self):
        assert select_pages(BOOK, ANALYSIS, "all") == [1, 2, 3, 5]

    def test_range_clipped_to_book(self):
        # page 4 is deleted and 9 does not exist
        assert select_pages(BOOK, ANALYSIS, "range", "3-9") == [3, 5]

    def test_pages_needs_spec(self):
        with pytest.raises(SelectionError):
            select_pages(BOOK, ANALYSIS, "pages")

    def test_unknown_mode(self):
        with pytest.raises(SelectionError, match="unknown mode"):
            select_pages(BOOK, ANALYSIS, "everything")

    def test_empty_selection_is_valid(self):
        analysis = ChangeAnalysis(book="B", changes=(PageChange(1, ChangeKind.UNCHANGED),))
        assert select_pages(BOOK, analysis, "changed") == []
