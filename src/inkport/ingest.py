"""Import pipeline: the main entry point for bringing a note archive in.

Orchestrates one run per book::

    decode -> load manifest (or recover, or none) -> analyze -> select
           -> execute -> fold + persist manifest once -> rebuild index

:func:`prepare_import` covers the read-only front half and is also what
"analyze" surfaces call.  :func:`commit_import` takes an explicit page
selection (chosen by the caller) and does the writing.  Decode and manifest
errors abort the run before anything is written; page errors are collected
into the :class:`ImportSummary`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio.to_thread

from inkport.archive import open_archive
from inkport.book import Book
from inkport.changes import ChangeAnalysis, ChangeKind, analyze_changes, read_embedded_fingerprints
from inkport.config import ImportConfig
from inkport.errors import BookNotFound
from inkport.executor import PageError, execute_import, fold_outcomes
from inkport.fingerprint import Fingerprint, ResetPlaceholder
from inkport.index import write_index
from inkport.manifest import (
    HistoryEntry,
    Manifest,
    append_history,
    backup_manifest,
    load_manifest,
    new_manifest,
    now_iso,
    reset_pages,
    save_manifest,
)
from inkport.page_doc import set_embedded_fingerprint
from inkport.paths import BookLayout, sanitize_name
from inkport.recovery import recover_manifest
from inkport.runstate import RunRegistry
from inkport.runstate import registry as default_registry
from inkport.selection import select_pages
from inkport.storage import Storage, join
from inkport.transcribe import Transcriber

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class PreparedImport:
    """Result of the read-only phase: everything needed to commit."""

    book: Book
    layout: BookLayout
    manifest: Manifest | None
    embedded: dict[int, Fingerprint]
    analysis: ChangeAnalysis
    recovered: bool = False


@dataclass
class ImportSummary:
    """What a run did.  A run can succeed while reporting page errors."""

    book: str
    total_requested: int = 0
    new_pages: list[int] = field(default_factory=list)
    modified_pages: list[int] = field(default_factory=list)
    unchanged_pages: list[int] = field(default_factory=list)
    deleted_pages: list[int] = field(default_factory=list)
    errors: list[PageError] = field(default_factory=list)
    skipped_pages: list[int] = field(default_factory=list)
    artifacts_written: int = 0
    backup_path: str | None = None
    index_path: str | None = None
    cancelled: bool = False
    recovered: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "book": self.book,
            "totalRequested": self.total_requested,
            "newPages": self.new_pages,
            "modifiedPages": self.modified_pages,
            "unchangedPages": self.unchanged_pages,
            "deletedPages": self.deleted_pages,
            "errors": [e.to_dict() for e in self.errors],
            "skippedPages": self.skipped_pages,
            "artifactsWritten": self.artifacts_written,
            "backupPath": self.backup_path,
            "indexPath": self.index_path,
            "cancelled": self.cancelled,
            "recovered": self.recovered,
        }

    def describe(self) -> str:
        """One-line human summary (also stored in the manifest history)."""
        parts = [
            f"{len(self.new_pages)} new",
            f"{len(self.modified_pages)} modified",
            f"{len(self.unchanged_pages)} unchanged",
        ]
        if self.deleted_pages:
            parts.append(f"{len(self.deleted_pages)} missing from archive")
        if self.errors:
            parts.append(f"{len(self.errors)} failed")
        if self.skipped_pages:
            parts.append(f"{len(self.skipped_pages)} skipped")
        return f"{self.total_requested} pages requested: " + ", ".join(parts)


# ---------------------------------------------------------------------------
# Phase helpers
# ---------------------------------------------------------------------------


def layout_for(config: ImportConfig, book_name: str) -> BookLayout:
    return BookLayout(
        notes_folder=config.notes_folder,
        book=book_name,
        images_subdir=config.images_subdir,
        audio_subdir=config.audio_subdir,
    )


def load_or_recover(
    storage: Storage,
    layout: BookLayout,
    config: ImportConfig,
    source_file: str = "",
) -> tuple[Manifest | None, bool]:
    """Load the manifest; rebuild it from page files if it is missing.

    Returns ``(manifest_or_None, recovered)``.

    Raises:
        ManifestCorrupt: If a manifest exists but cannot be parsed.
    """
    manifest = load_manifest(storage, layout.manifest_path)
    if manifest is not None:
        return manifest, False
    recovered = recover_manifest(
        storage, layout, source_file=source_file, history_max=config.history_max
    )
    return recovered, recovered is not None


def prepare_book(book: Book, storage: Storage, config: ImportConfig) -> PreparedImport:
    """Manifest load/recovery and change analysis for a decoded book."""
    layout = layout_for(config, book.name)
    manifest, recovered = load_or_recover(storage, layout, config, book.source_file)
    embedded = read_embedded_fingerprints(storage, layout, manifest)
    analysis = analyze_changes(book, manifest, embedded)
    return PreparedImport(
        book=book,
        layout=layout,
        manifest=manifest,
        embedded=embedded,
        analysis=analysis,
        recovered=recovered,
    )


def prepare_import(archive_path: Path, storage: Storage, config: ImportConfig) -> PreparedImport:
    """Decode an archive and analyze it against the library.

    Raises:
        ArchiveError: Archive cannot be opened or parsed.
        ManifestCorrupt: Manifest exists but is invalid.
    """
    book = open_archive(archive_path, config)
    return prepare_book(book, storage, config)


async def commit_import(
    prepared: PreparedImport,
    selected: list[int],
    storage: Storage,
    config: ImportConfig,
    *,
    transcriber: Transcriber | None = None,
    registry: RunRegistry = default_registry,
    cancel_token: threading.Event | None = None,
    now: str | None = None,
) -> ImportSummary:
    """Execute the selected pages and persist the manifest once.

    The manifest is reloaded under the run token, so records committed by
    another run since *prepared* was built are kept.

    Raises:
        ImportInProgress: Another run for the same book is active.
        ManifestWriteFailed: The manifest could not be saved.
    """
    book, layout = prepared.book, prepared.layout
    summary = ImportSummary(book=book.name, total_requested=len(selected))

    with registry.claim(book.name):
        # Another run may have committed since this one was prepared.
        current = await anyio.to_thread.run_sync(prepare_book, book, storage, config)
        summary.deleted_pages = current.analysis.pages(ChangeKind.DELETED)
        summary.recovered = prepared.recovered or current.recovered
        if not selected:
            logger.info("Nothing selected for '%s'; no changes written", book.name)
            return summary

        stamp = now or now_iso()
        result = await execute_import(
            book,
            selected,
            current.manifest,
            storage,
            layout,
            config,
            transcriber=transcriber,
            embedded=current.embedded,
            cancel_token=cancel_token,
            now=stamp,
        )
        summary.new_pages = result.pages(ChangeKind.NEW)
        summary.modified_pages = result.pages(ChangeKind.MODIFIED)
        summary.unchanged_pages = result.pages(ChangeKind.UNCHANGED)
        summary.errors = result.errors
        summary.skipped_pages = result.skipped
        summary.cancelled = result.cancelled
        summary.artifacts_written = result.artifacts_written

        base = current.manifest or new_manifest(book.name, book.source_file)
        updated = fold_outcomes(base, result.outcomes, book, stamp)
        updated = append_history(
            updated,
            HistoryEntry(
                timestamp=stamp,
                action="import",
                pages=tuple(o.page for o in result.succeeded),
                summary=summary.describe(),
            ),
            config.history_max,
        )

        summary.backup_path = backup_manifest(
            storage,
            layout.manifest_path,
            layout.backup_dir,
            enabled=config.backup_manifest,
            keep=config.backup_keep,
        )
        storage.ensure_dir(layout.state_dir)
        save_manifest(storage, layout.manifest_path, updated)

        if config.create_index:
            summary.index_path = write_index(storage, layout, updated, config)

    logger.info("Import of '%s' finished: %s", book.name, summary.describe())
    return summary


async def import_archive(
    archive_path: Path,
    storage: Storage,
    config: ImportConfig,
    *,
    select: str = "changed",
    pages: str = "",
    transcriber: Transcriber | None = None,
    registry: RunRegistry = default_registry,
    cancel_token: threading.Event | None = None,
) -> ImportSummary:
    """End-to-end run with a canned selection (see :mod:`inkport.selection`)."""
    prepared = await anyio.to_thread.run_sync(prepare_import, archive_path, storage, config)
    selected = select_pages(prepared.book, prepared.analysis, select, pages)
    return await commit_import(
        prepared,
        selected,
        storage,
        config,
        transcriber=transcriber,
        registry=registry,
        cancel_token=cancel_token,
    )


# ---------------------------------------------------------------------------
# Book-level maintenance
# ---------------------------------------------------------------------------


def _require_manifest(storage: Storage, config: ImportConfig, book: str) -> tuple[BookLayout, Manifest]:
    layout = layout_for(config, sanitize_name(book))
    manifest, _ = load_or_recover(storage, layout, config)
    if manifest is None:
        raise BookNotFound(book, config.notes_folder)
    return layout, manifest


def reset_book_pages(
    storage: Storage,
    config: ImportConfig,
    book: str,
    pages: list[int] | None = None,
    *,
    registry: RunRegistry = default_registry,
) -> list[int]:
    """Invalidate pages so the next import rewrites them.

    Both the manifest entry and the page document's embedded fingerprint get
    a ``RESET-*`` placeholder.  Returns the page numbers that were reset.
    """
    with registry.claim(sanitize_name(book)):
        layout, manifest = _require_manifest(storage, config, book)
        targets = sorted(manifest.pages) if not pages else sorted(set(pages) & set(manifest.pages))
        if not targets:
            return []

        stamp = now_iso()
        updated = reset_pages(manifest, targets, stamp)
        placeholder = ResetPlaceholder(stamp)
        for n in targets:
            path = join(layout.book_dir, updated.pages[n].output_file or layout.page_doc_name(n))
            if storage.exists(path):
                storage.write_text(path, set_embedded_fingerprint(storage.read_text(path), placeholder))
        updated = append_history(
            updated,
            HistoryEntry(
                timestamp=stamp,
                action="reset",
                pages=tuple(targets),
                summary=f"Reset {len(targets)} pages for re-import",
            ),
            config.history_max,
        )
        backup_manifest(
            storage,
            layout.manifest_path,
            layout.backup_dir,
            enabled=config.backup_manifest,
            keep=config.backup_keep,
        )
        save_manifest(storage, layout.manifest_path, updated)
    logger.info("Reset %d pages of '%s'", len(targets), layout.book)
    return targets


def rebuild_index(storage: Storage, config: ImportConfig, book: str) -> str:
    """Regenerate the index document of an imported book."""
    layout, manifest = _require_manifest(storage, config, book)
    return write_index(storage, layout, manifest, config)


def book_status(
    storage: Storage,
    config: ImportConfig,
    book: str,
    *,
    registry: RunRegistry = default_registry,
) -> dict[str, Any]:
    """Manifest summary of an imported book."""
    layout, manifest = _require_manifest(storage, config, book)
    return {
        "book": manifest.book_name,
        "folder": layout.book_dir,
        "source_file": manifest.source_file,
        "total_pages": manifest.total_pages,
        "imported_pages": sorted(manifest.pages),
        "with_audio": sorted(n for n, r in manifest.pages.items() if r.has_audio),
        "transcribed": sorted(n for n, r in manifest.pages.items() if r.transcribed),
        "last_import": manifest.last_import,
        "import_running": registry.is_active(layout.book),
        "history": [h.to_dict() for h in manifest.history[:5]],
    }
