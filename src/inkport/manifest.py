"""Per-book import manifest: ``<book>/.inkport/manifest.json``.

The manifest is the only state that survives between runs.  It maps page
number to the fingerprint and metadata recorded when that page was last
imported, plus a bounded history log (newest first).

``image_hash`` always holds the fingerprint of the *original* page bytes,
never of the background-composited artifact, so a cosmetic setting change
is not mistaken for a content change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from inkport.errors import ManifestCorrupt, ManifestWriteFailed
from inkport.fingerprint import ResetPlaceholder
from inkport.storage import Storage, join, parent_of

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"


def now_iso() -> str:
    """Current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageRecord:
    """What was imported for one page."""

    output_file: str  # page document name, relative to the book folder
    imported_at: str
    image_hash: str  # fingerprint of the original bytes (may be a placeholder)
    display_hash: str | None = None  # fingerprint of the written artifact, if different
    transcribed: bool = False
    has_audio: bool = False
    last_modified: str = ""
    size: int = 0
    background: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PageRecord:
        return cls(
            output_file=str(data.get("output_file", "")),
            imported_at=str(data.get("imported_at", "")),
            image_hash=str(data.get("image_hash", "")),
            display_hash=data.get("display_hash"),
            transcribed=bool(data.get("transcribed", False)),
            has_audio=bool(data.get("has_audio", False)),
            last_modified=str(data.get("last_modified", "")),
            size=int(data.get("size", 0) or 0),
            background=str(data.get("background", "")),
        )


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: str
    action: str  # import | recovered | reset
    pages: tuple[int, ...] = ()
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "action": self.action,
            "pages": list(self.pages),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            timestamp=str(data.get("timestamp", "")),
            action=str(data.get("action", "")),
            pages=tuple(int(p) for p in data.get("pages", []) or []),
            summary=str(data.get("summary", "")),
        )


@dataclass(frozen=True)
class Manifest:
    book_name: str
    total_pages: int = 0
    pages: dict[int, PageRecord] = field(default_factory=dict)
    last_import: str = ""
    source_file: str = ""
    version: str = MANIFEST_VERSION
    history: tuple[HistoryEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "book_name": self.book_name,
            "total_pages": self.total_pages,
            "source_file": self.source_file,
            "last_import": self.last_import,
            "pages": {str(n): self.pages[n].to_dict() for n in sorted(self.pages)},
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        raw_pages = data.get("pages", {}) or {}
        if not isinstance(raw_pages, dict):
            raise ValueError("'pages' must be an object keyed by page number")
        pages = {int(k): PageRecord.from_dict(v) for k, v in raw_pages.items()}
        return cls(
            book_name=str(data.get("book_name", "")),
            total_pages=int(data.get("total_pages", 0) or 0),
            pages=pages,
            last_import=str(data.get("last_import", "")),
            source_file=str(data.get("source_file", "")),
            # All loads are treated as the current schema.
            version=str(data.get("version", MANIFEST_VERSION)),
            history=tuple(HistoryEntry.from_dict(h) for h in data.get("history", []) or []),
        )


def new_manifest(book_name: str, source_file: str = "") -> Manifest:
    """Empty manifest for a book imported for the first time."""
    return Manifest(book_name=book_name, source_file=source_file)


# ---------------------------------------------------------------------------
# Load / save / backup
# ---------------------------------------------------------------------------


def load_manifest(storage: Storage, path: str) -> Manifest | None:
    """Load a manifest, or None if the file does not exist.

    Raises:
        ManifestCorrupt: If the file exists but is not a valid manifest.
    """
    if not storage.exists(path):
        return None
    text = storage.read_text(path)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestCorrupt(path, f"invalid JSON ({e})") from e
    if not isinstance(data, dict):
        raise ManifestCorrupt(path, f"expected a JSON object, got {type(data).__name__}")
    try:
        return Manifest.from_dict(data)
    except (TypeError, ValueError, AttributeError) as e:
        raise ManifestCorrupt(path, str(e)) from e


def save_manifest(storage: Storage, path: str, manifest: Manifest) -> None:
    """Write the full manifest snapshot.

    The normal write can be rejected for a path in a freshly created folder;
    in that case the folder is ensured and the direct write primitive is
    used instead.

    Raises:
        ManifestWriteFailed: If the fallback write fails too.
    """
    text = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False)
    try:
        storage.write_text(path, text)
        return
    except OSError as e:
        logger.warning("Manifest write to %s failed (%s); retrying with direct write", path, e)

    try:
        storage.ensure_dir(parent_of(path))
        storage.write_text_direct(path, text)
    except OSError as e:
        raise ManifestWriteFailed(path, str(e)) from e


def backup_manifest(
    storage: Storage,
    path: str,
    backup_dir: str,
    *,
    enabled: bool = True,
    keep: int = 5,
) -> str | None:
    """Copy the manifest to ``<backup_dir>/manifest-<timestamp>.json``.

    Returns the backup path, or None when backups are disabled or no
    manifest exists yet.  Only the newest *keep* backups are retained
    (``keep=0`` keeps all).
    """
    if not enabled or not storage.exists(path):
        return None
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")
    target = join(backup_dir, f"manifest-{stamp}.json")
    storage.ensure_dir(backup_dir)
    storage.copy(path, target)
    logger.info("Manifest backed up to %s", target)

    if keep > 0:
        backups = sorted(
            n for n in storage.list_dir(backup_dir)
            if n.startswith("manifest-") and n.endswith(".json")
        )
        for old in backups[:-keep]:
            storage.delete(join(backup_dir, old))
    return target


# ---------------------------------------------------------------------------
# Pure updates
# ---------------------------------------------------------------------------


def append_history(manifest: Manifest, entry: HistoryEntry, cap: int) -> Manifest:
    """Prepend *entry* and keep at most *cap* entries (oldest dropped)."""
    history = (entry,) + manifest.history
    return replace(manifest, history=history[: max(cap, 0)])


def reset_pages(manifest: Manifest, pages: list[int], now: str | None = None) -> Manifest:
    """Replace the fingerprints of *pages* with ``RESET-*`` placeholders.

    Pages not in the manifest are ignored.  The next import classifies every
    reset page as modified and rewrites it.
    """
    stamp = now or now_iso()
    placeholder = str(ResetPlaceholder(stamp))
    updated = dict(manifest.pages)
    for n in pages:
        if n in updated:
            updated[n] = replace(updated[n], image_hash=placeholder)
    return replace(manifest, pages=updated)
