"""Import executor: materialize selected pages in concurrent batches.

Selected pages are processed in fixed-size batches.  Pages inside a batch
run concurrently (each page's blocking I/O in a worker thread); batches run
one after another with a short pause in between so the host stays
responsive.

Each page is an independent unit of work.  An exception while processing
one page is recorded as a :class:`PageError` and never stops the batch or
the run.  Artifacts are rewritten only when needed:

* image: page new or modified, background setting changed, or file missing
* SVG / audio: page new or modified, or file missing (audio also when it
  newly appeared)

The page document itself is always rewritten from scratch and embeds the
original fingerprint.

Nothing here writes the manifest.  :func:`fold_outcomes` turns the
per-page outcomes into a new manifest value; the caller persists it once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any

import anyio
import anyio.to_thread

from inkport.book import Book, Page
from inkport.cancellation import current_token, is_cancelled
from inkport.changes import ChangeKind, classify, resolve_baselines
from inkport.config import ImportConfig
from inkport.fingerprint import Fingerprint, fingerprint_bytes
from inkport.manifest import Manifest, PageRecord, now_iso
from inkport.page_doc import (
    DEFAULT_TAGS,
    PageDocument,
    extract_transcription,
    format_date,
    parse_front_matter,
    render_page_document,
)
from inkport.paths import BookLayout
from inkport.render import composite_background, strokes_to_svg
from inkport.storage import Storage
from inkport.transcribe import Transcriber

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageError:
    page: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"page": self.page, "error": self.message}


@dataclass(frozen=True)
class PageOutcome:
    """Result of processing one page: a new record, or an error."""

    page: int
    kind: ChangeKind | None = None
    record: PageRecord | None = None
    error: str | None = None
    artifacts_written: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExecutionResult:
    outcomes: list[PageOutcome] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    cancelled: bool = False
    thumbnail_written: bool = False

    @property
    def errors(self) -> list[PageError]:
        return [PageError(o.page, o.error) for o in self.outcomes if o.error is not None]

    @property
    def succeeded(self) -> list[PageOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def artifacts_written(self) -> int:
        return sum(o.artifacts_written for o in self.outcomes) + int(self.thumbnail_written)

    def pages(self, kind: ChangeKind) -> list[int]:
        return [o.page for o in self.succeeded if o.kind == kind]


@dataclass(frozen=True)
class _RunContext:
    book: Book
    storage: Storage
    layout: BookLayout
    config: ImportConfig
    baselines: dict[int, Fingerprint]
    records: dict[int, PageRecord]
    transcriber: Transcriber | None
    now: str


# ---------------------------------------------------------------------------
# Per-page work (runs in a worker thread)
# ---------------------------------------------------------------------------


def _existing_transcription(storage: Storage, path: str) -> tuple[str | None, list[str]]:
    if not storage.exists(path):
        return None, []
    text = storage.read_text(path)
    tags = parse_front_matter(text).get("tags") or []
    extra = [str(t) for t in tags if str(t) not in DEFAULT_TAGS] if isinstance(tags, list) else []
    return extract_transcription(text), extra


def process_page(ctx: _RunContext, page: Page) -> PageOutcome:
    """Write one page's artifacts and document; return its new record.

    Raises whatever the storage collaborator raises; the caller isolates it.
    """
    cfg, layout, storage = ctx.config, ctx.layout, ctx.storage
    n = page.number
    record = ctx.records.get(n)
    kind = classify(ctx.baselines.get(n), page.fingerprint)
    content_changed = kind != ChangeKind.UNCHANGED
    written = 0

    image_link = svg_link = audio_link = ""
    display_hash = record.display_hash if record else None
    background = record.background if record else ""

    if cfg.wants_svg and page.strokes:
        path = layout.image_path(n, ".svg")
        if content_changed or not storage.exists(path):
            svg = strokes_to_svg(page.strokes)
            if svg:
                storage.write_text(path, svg)
                written += 1
        if storage.exists(path):
            svg_link = layout.relative(path)

    # SVG-only output still needs a raster page when there are no strokes
    if cfg.wants_png or not svg_link:
        path = layout.image_path(n)
        bg_changed = record is None or record.background != cfg.background_color
        if content_changed or bg_changed or not storage.exists(path):
            data = composite_background(page.image, cfg.background_color)
            storage.write_bytes(path, data)
            written += 1
            display_hash = None if data is page.image else str(fingerprint_bytes(data))
        background = cfg.background_color
        image_link = layout.relative(path)

    if page.audio is not None:
        path = layout.audio_path(n, page.audio.extension)
        audio_appeared = record is None or not record.has_audio
        if content_changed or audio_appeared or not storage.exists(path):
            storage.write_bytes(path, page.audio.data)
            written += 1
        audio_link = layout.relative(path)

    doc_path = layout.page_doc_path(n)
    transcription: str | None = None
    tags: list[str] = []
    if not content_changed:
        transcription, tags = _existing_transcription(storage, doc_path)
    if transcription is None and ctx.transcriber is not None:
        try:
            result = ctx.transcriber.transcribe(page.image)
            transcription, tags = (result.text or None), list(result.tags)
        except Exception as e:
            # best-effort: the page is imported with a pending marker
            logger.warning("Transcription of page %d failed: %s", n, e)

    include_ts = cfg.include_timestamps
    doc = PageDocument(
        book=ctx.book.name,
        page=n,
        total_pages=len(ctx.book.pages),
        image_hash=str(page.fingerprint),
        source_file=ctx.book.source_file,
        imported_at=ctx.now,
        created=format_date(ctx.book.created, cfg.date_format) if include_ts else "",
        updated=format_date(ctx.book.updated, cfg.date_format) if include_ts else "",
        image_link=image_link,
        svg_link=svg_link,
        audio_link=audio_link,
        transcription=transcription,
        tags=tags,
    )
    storage.write_text(doc_path, render_page_document(doc, include_metadata=cfg.include_metadata))

    new_record = PageRecord(
        output_file=layout.page_doc_name(n),
        imported_at=ctx.now,
        image_hash=str(page.fingerprint),
        display_hash=display_hash,
        transcribed=transcription is not None,
        has_audio=page.has_audio,
        last_modified=ctx.now if content_changed or record is None else record.last_modified,
        size=len(page.image),
        background=background,
    )
    return PageOutcome(page=n, kind=kind, record=new_record, artifacts_written=written)


async def _run_page(ctx: _RunContext, page: Page, results: dict[int, PageOutcome]) -> None:
    try:
        outcome = await anyio.to_thread.run_sync(process_page, ctx, page)
    except Exception as e:
        logger.warning("Page %d of '%s' failed: %s", page.number, ctx.book.name, e)
        outcome = PageOutcome(page=page.number, error=f"{type(e).__name__}: {e}")
    results[page.number] = outcome


def _write_thumbnail(storage: Storage, layout: BookLayout, data: bytes) -> bool:
    path = layout.thumbnail_path
    if storage.exists(path) and storage.read_bytes(path) == data:
        return False
    storage.write_bytes(path, data)
    return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _batches(items: list[Page], size: int) -> list[list[Page]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def execute_import(
    book: Book,
    selected: list[int],
    manifest: Manifest | None,
    storage: Storage,
    layout: BookLayout,
    config: ImportConfig,
    *,
    transcriber: Transcriber | None = None,
    embedded: dict[int, Fingerprint] | None = None,
    cancel_token: threading.Event | None = None,
    now: str | None = None,
) -> ExecutionResult:
    """Process the selected pages of *book*.

    Args:
        book: Decoded book (read-only during the run).
        selected: Page numbers to process; empty means nothing to do.
        manifest: Current manifest, or None for a first import.
        storage: Storage collaborator.
        layout: Output paths for the book.
        config: Import settings (batch size, output format, background...).
        transcriber: Optional transcription collaborator.
        embedded: Fingerprints read from existing page documents.
        cancel_token: Checked between batches; defaults to the current token.
        now: Timestamp recorded on every written record.

    Returns:
        :class:`ExecutionResult`; page failures are inside, never raised.
    """
    result = ExecutionResult()
    if not selected:
        return result

    token = cancel_token if cancel_token is not None else current_token()
    ctx = _RunContext(
        book=book,
        storage=storage,
        layout=layout,
        config=config,
        baselines=resolve_baselines(manifest, embedded),
        records=dict(manifest.pages) if manifest else {},
        transcriber=transcriber,
        now=now or now_iso(),
    )

    outcomes: dict[int, PageOutcome] = {}
    pages: list[Page] = []
    for n in sorted(set(selected)):
        page = book.page(n)
        if page is None:
            outcomes[n] = PageOutcome(page=n, error="page not present in this archive")
        else:
            pages.append(page)

    storage.ensure_dir(layout.book_dir)
    storage.ensure_dir(layout.images_dir)
    if any(p.audio is not None for p in pages):
        storage.ensure_dir(layout.audio_dir)
    if config.include_thumbnails and book.thumbnail:
        try:
            result.thumbnail_written = _write_thumbnail(storage, layout, book.thumbnail)
        except OSError as e:
            logger.warning("Thumbnail for '%s' not written: %s", book.name, e)

    batches = _batches(pages, max(config.batch_size, 1))
    for i, batch in enumerate(batches):
        if is_cancelled(token):
            result.cancelled = True
            result.skipped = [p.number for b in batches[i:] for p in b]
            logger.warning(
                "Import of '%s' cancelled; %d pages skipped", book.name, len(result.skipped)
            )
            break
        if i > 0:
            await anyio.sleep(config.batch_delay)
        logger.debug("Batch %d/%d: pages %s", i + 1, len(batches), [p.number for p in batch])
        async with anyio.create_task_group() as tg:
            for page in batch:
                tg.start_soon(_run_page, ctx, page, outcomes)

    result.outcomes = [outcomes[n] for n in sorted(outcomes)]
    logger.info(
        "Executed %d pages of '%s': %d ok, %d failed, %d artifacts written",
        len(result.outcomes),
        book.name,
        len(result.succeeded),
        len(result.errors),
        result.artifacts_written,
    )
    return result


def fold_outcomes(
    manifest: Manifest,
    outcomes: list[PageOutcome],
    book: Book,
    now: str,
) -> Manifest:
    """New manifest with the records of successful pages applied.

    Failed pages keep whatever entry they had before.
    """
    pages = dict(manifest.pages)
    for outcome in outcomes:
        if outcome.ok and outcome.record is not None:
            pages[outcome.page] = outcome.record
    return replace(
        manifest,
        book_name=book.name,
        total_pages=len(book.pages),
        pages=pages,
        last_import=now,
        source_file=book.source_file,
    )
