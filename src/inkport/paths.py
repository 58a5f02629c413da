"""Canonical folder and file names for an imported book.

Single source of truth for where the engine reads and writes.  All paths
are storage-relative POSIX strings (see :mod:`inkport.storage`).

Layout, under ``<notes_folder>/<book>/``::

    <book>.md                       index document
    <book>_page_001.md              page documents
    images/<book>_page_001.png      raster artifact (background applied)
    images/<book>_page_001.svg      vector artifact from strokes
    images/<book>_thumbnail.png
    audio/<book>_page_001.m4a
    .inkport/manifest.json          import manifest
    .inkport/backups/               timestamped manifest copies
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from inkport.storage import join

DOT_DIR = ".inkport"
MANIFEST_NAME = "manifest.json"
BACKUP_DIR = "backups"
CONFIG_NAME = "inkport.yaml"

PAGE_DIGITS = 3

# Characters unsafe in filenames on any major filesystem (POSIX + Windows + HFS+)
_UNSAFE_FILENAME_RE = re.compile(r'[/\\:*?"<>|\x00]')


def sanitize_name(name: str) -> str:
    """Strip characters that cannot appear in a file or folder name."""
    return _UNSAFE_FILENAME_RE.sub("", name).strip().strip(".")


def page_stem(book: str, page: int) -> str:
    """``<book>_page_007``: shared stem of every per-page file."""
    return f"{book}_page_{page:0{PAGE_DIGITS}d}"


def page_doc_pattern(book: str) -> re.Pattern:
    """Strict pattern for page documents of *book*; group 1 is the page number."""
    return re.compile(rf"^{re.escape(book)}_page_(\d{{{PAGE_DIGITS},}})\.md$")


@dataclass(frozen=True)
class BookLayout:
    """Resolved storage paths for one book."""

    notes_folder: str
    book: str
    images_subdir: str = "images"
    audio_subdir: str = "audio"

    @property
    def book_dir(self) -> str:
        return join(self.notes_folder, self.book)

    @property
    def images_dir(self) -> str:
        return join(self.book_dir, self.images_subdir)

    @property
    def audio_dir(self) -> str:
        return join(self.book_dir, self.audio_subdir)

    @property
    def state_dir(self) -> str:
        return join(self.book_dir, DOT_DIR)

    @property
    def manifest_path(self) -> str:
        return join(self.state_dir, MANIFEST_NAME)

    @property
    def backup_dir(self) -> str:
        return join(self.state_dir, BACKUP_DIR)

    @property
    def index_path(self) -> str:
        return join(self.book_dir, f"{self.book}.md")

    def page_doc_name(self, page: int) -> str:
        return f"{page_stem(self.book, page)}.md"

    def page_doc_path(self, page: int) -> str:
        return join(self.book_dir, self.page_doc_name(page))

    def image_name(self, page: int, ext: str = ".png") -> str:
        return f"{page_stem(self.book, page)}{ext}"

    def image_path(self, page: int, ext: str = ".png") -> str:
        return join(self.images_dir, self.image_name(page, ext))

    def audio_name(self, page: int, ext: str) -> str:
        return f"{page_stem(self.book, page)}{ext}"

    def audio_path(self, page: int, ext: str) -> str:
        return join(self.audio_dir, self.audio_name(page, ext))

    @property
    def thumbnail_path(self) -> str:
        return join(self.images_dir, f"{self.book}_thumbnail.png")

    def relative(self, path: str) -> str:
        """*path* relative to the book folder, for links inside documents."""
        prefix = self.book_dir + "/"
        return path[len(prefix):] if path.startswith(prefix) else path
