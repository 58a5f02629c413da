"""Rebuild a lost manifest from the page documents already on disk.

Only structure can be recovered.  The bytes that were originally imported
are gone (the image on disk may carry a composited background), so every
recovered page gets a ``recovered-<size>-<mtime>`` placeholder fingerprint
and is re-verified on the next import.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

from inkport.fingerprint import RecoveredPlaceholder
from inkport.manifest import (
    HistoryEntry,
    Manifest,
    PageRecord,
    append_history,
    new_manifest,
    now_iso,
    save_manifest,
)
from inkport.page_doc import extract_transcription, has_audio_section
from inkport.paths import BookLayout, page_doc_pattern
from inkport.storage import Storage, join

logger = logging.getLogger(__name__)


def _mtime_iso(mtime: float) -> str:
    return datetime.fromtimestamp(mtime, tz=UTC).isoformat()


def _recover_record(storage: Storage, layout: BookLayout, name: str, page: int) -> PageRecord:
    doc_path = join(layout.book_dir, name)
    text = storage.read_text(doc_path)

    # Prefer the image artifact; fall back to the document itself.
    artifact = layout.image_path(page)
    if not storage.exists(artifact):
        artifact = layout.image_path(page, ".svg")
    if not storage.exists(artifact):
        artifact = doc_path
    st = storage.stat(artifact)

    stamp = _mtime_iso(st.mtime)
    return PageRecord(
        output_file=name,
        imported_at=stamp,
        image_hash=str(RecoveredPlaceholder(st.size, int(st.mtime))),
        transcribed=extract_transcription(text) is not None,
        has_audio=has_audio_section(text),
        last_modified=stamp,
        size=st.size,
    )


def recover_manifest(
    storage: Storage,
    layout: BookLayout,
    *,
    source_file: str = "",
    history_max: int = 50,
) -> Manifest | None:
    """Scan the book folder and persist a best-effort manifest.

    Returns None (and writes nothing) when no page documents are found.
    """
    pattern = page_doc_pattern(layout.book)
    found: dict[int, str] = {}
    for name in storage.list_dir(layout.book_dir):
        m = pattern.match(name)
        if m:
            found[int(m.group(1))] = name
    if not found:
        return None

    pages: dict[int, PageRecord] = {}
    for number in sorted(found):
        pages[number] = _recover_record(storage, layout, found[number], number)

    stamp = now_iso()
    manifest = replace(
        new_manifest(layout.book, source_file),
        total_pages=max(pages),
        pages=pages,
        last_import=stamp,
    )
    manifest = append_history(
        manifest,
        HistoryEntry(
            timestamp=stamp,
            action="recovered",
            pages=tuple(sorted(pages)),
            summary=f"Recovered {len(pages)} pages from existing files",
        ),
        history_max,
    )
    storage.ensure_dir(layout.state_dir)
    save_manifest(storage, layout.manifest_path, manifest)
    logger.warning(
        "Manifest for '%s' was missing; recovered %d pages from page files",
        layout.book,
        len(pages),
    )
    return manifest
