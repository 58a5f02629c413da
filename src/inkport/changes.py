"""Change analysis: diff a decoded book against the manifest.

Every decoded page is classified as new, modified or unchanged against its
baseline fingerprint; manifest pages missing from the archive are reported
as deleted.  The baseline is the ``image_hash`` embedded in the page
document when there is one, otherwise the manifest's copy.

:func:`analyze_changes` is pure; :func:`read_embedded_fingerprints` does the
I/O half.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from inkport.book import Book
from inkport.fingerprint import Fingerprint, fingerprints_match, parse_fingerprint
from inkport.manifest import Manifest
from inkport.page_doc import embedded_fingerprint
from inkport.paths import BookLayout
from inkport.storage import Storage, join

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


@dataclass(frozen=True)
class PageChange:
    page: int
    kind: ChangeKind
    old_hash: str | None = None
    new_hash: str | None = None
    audio_changed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "kind": self.kind.value,
            "old_hash": self.old_hash,
            "new_hash": self.new_hash,
            "audio_changed": self.audio_changed,
        }


@dataclass(frozen=True)
class ChangeAnalysis:
    book: str
    changes: tuple[PageChange, ...] = ()
    bootstrap: bool = False  # no manifest existed

    def pages(self, kind: ChangeKind) -> list[int]:
        return [c.page for c in self.changes if c.kind == kind]

    def change(self, page: int) -> PageChange | None:
        for c in self.changes:
            if c.page == page:
                return c
        return None

    @property
    def counts(self) -> dict[str, int]:
        out = {k.value: 0 for k in ChangeKind}
        for c in self.changes:
            out[c.kind.value] += 1
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "book": self.book,
            "bootstrap": self.bootstrap,
            "counts": self.counts,
            "new": self.pages(ChangeKind.NEW),
            "modified": self.pages(ChangeKind.MODIFIED),
            "unchanged": self.pages(ChangeKind.UNCHANGED),
            "deleted": self.pages(ChangeKind.DELETED),
            "changes": [c.to_dict() for c in self.changes],
        }


def read_embedded_fingerprints(
    storage: Storage, layout: BookLayout, manifest: Manifest | None
) -> dict[int, Fingerprint]:
    """Read ``image_hash`` from each existing page document in the manifest."""
    embedded: dict[int, Fingerprint] = {}
    if manifest is None:
        return embedded
    for number, record in manifest.pages.items():
        name = record.output_file or layout.page_doc_name(number)
        path = join(layout.book_dir, name)
        if not storage.exists(path):
            continue
        try:
            fp = embedded_fingerprint(storage.read_text(path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s for its fingerprint: %s", path, e)
            continue
        if fp is not None:
            embedded[number] = fp
    return embedded


def resolve_baselines(
    manifest: Manifest | None, embedded: dict[int, Fingerprint] | None = None
) -> dict[int, Fingerprint]:
    """Comparison baseline per page: embedded fingerprint, else manifest."""
    if manifest is None:
        return {}
    embedded = embedded or {}
    baselines: dict[int, Fingerprint] = {}
    for number, record in manifest.pages.items():
        if number in embedded:
            baselines[number] = embedded[number]
        elif record.image_hash:
            baselines[number] = parse_fingerprint(record.image_hash)
    return baselines


def classify(baseline: Fingerprint | None, current: Fingerprint) -> ChangeKind:
    """Classify one page given its baseline (None means never imported)."""
    if baseline is None:
        return ChangeKind.NEW
    if fingerprints_match(baseline, current):
        return ChangeKind.UNCHANGED
    return ChangeKind.MODIFIED


def analyze_changes(
    book: Book,
    manifest: Manifest | None,
    embedded: dict[int, Fingerprint] | None = None,
) -> ChangeAnalysis:
    """Classify every decoded page and surface deletions.

    With no manifest every page is new and nothing is deleted.  The result
    is ordered by page number regardless of input ordering.
    """
    if manifest is None:
        changes = tuple(
            PageChange(page=p.number, kind=ChangeKind.NEW, new_hash=str(p.fingerprint))
            for p in sorted(book.pages, key=lambda p: p.number)
        )
        return ChangeAnalysis(book=book.name, changes=changes, bootstrap=True)

    baselines = resolve_baselines(manifest, embedded)
    decoded = {p.number: p for p in book.pages}
    changes: list[PageChange] = []

    for number in sorted(decoded):
        page = decoded[number]
        baseline = baselines.get(number)
        record = manifest.pages.get(number)
        kind = classify(baseline, page.fingerprint)
        audio_changed = record is not None and record.has_audio != page.has_audio
        changes.append(
            PageChange(
                page=number,
                kind=kind,
                old_hash=str(baseline) if baseline is not None else None,
                new_hash=str(page.fingerprint),
                audio_changed=audio_changed,
            )
        )

    for number in sorted(set(manifest.pages) - set(decoded)):
        changes.append(
            PageChange(
                page=number,
                kind=ChangeKind.DELETED,
                old_hash=manifest.pages[number].image_hash or None,
            )
        )

    changes.sort(key=lambda c: c.page)
    analysis = ChangeAnalysis(book=book.name, changes=tuple(changes))
    logger.info("Change analysis for '%s': %s", book.name, analysis.counts)
    return analysis
