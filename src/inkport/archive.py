"""Archive decoder: ``.note`` / ``.zip`` containers into a :class:`Book`.

Two schema generations exist:

Generation 1::

    NotesBean.json            book metadata (nickname / noteName, createTime, upTime)
    NoteList.json             [{"pageId": ...}, ...] in page order
    <pageId>.png              page bitmap
    PATH_<pageId>.json        pen strokes [[x, y, t], ...]
    audio/...                 recordings

Generation 2 (marker entry ``NoteFileInfo.json``)::

    NoteFileInfo.json         book metadata (fileName, creationTime, lastModifiedTime)
    PageResource.json         [{"fileName": ..., "resourceType": ...}, ...]
                              main bitmaps have "mainBmp" in fileName,
                              stroke paths have resourceType 7
    audio/...

Pages are numbered by position in the page list.  A page whose bitmap
cannot be found is dropped; the other pages keep their numbers.
"""

from __future__ import annotations

import json
import logging
import zipfile
import zlib
from pathlib import Path
from typing import Any

from inkport.audio_match import DEFAULT_MATCHERS, AudioMatcher, list_audio_entries, match_book_audio
from inkport.book import AudioClip, Book, Page, StrokePoint
from inkport.config import ImportConfig
from inkport.errors import ArchiveError
from inkport.paths import sanitize_name

logger = logging.getLogger(__name__)

GEN2_MARKER = "NoteFileInfo.json"
GEN2_RESOURCES = "PageResource.json"
GEN1_METADATA = "NotesBean.json"
GEN1_PAGE_LIST = "NoteList.json"

MAIN_BITMAP_TAG = "mainBmp"
STROKE_RESOURCE_TYPE = 7

ARCHIVE_SUFFIXES = (".note", ".zip")


# ---------------------------------------------------------------------------
# Entry lookup helpers
# ---------------------------------------------------------------------------


def _find_containing(names: list[str], fragment: str) -> str | None:
    for n in names:
        if fragment in n and not n.endswith("/"):
            return n
    return None


def _find_exact(names: list[str], file_name: str) -> str | None:
    """Entry equal to *file_name*, or ending in ``/<file_name>``."""
    if file_name in names:
        return file_name
    suffix = "/" + file_name.lstrip("/")
    for n in names:
        if n.endswith(suffix):
            return n
    return None


def _read_json(zf: zipfile.ZipFile, name: str) -> Any:
    raw = zf.read(name)
    return json.loads(raw.decode("utf-8-sig"))


def _parse_strokes(data: Any) -> list[StrokePoint]:
    """Accept ``[[x, y, t], ...]`` or ``[{"x":..,"y":..,"t":..}, ...]``."""
    points: list[StrokePoint] = []
    if not isinstance(data, list):
        return points
    for item in data:
        if isinstance(item, (list, tuple)) and len(item) >= 3:
            points.append((float(item[0]), float(item[1]), float(item[2])))
        elif isinstance(item, dict) and "x" in item and "y" in item:
            t = item.get("t", item.get("timestamp", 0))
            points.append((float(item["x"]), float(item["y"]), float(t)))
    return points


def book_name_for(file_name: str, metadata: dict[str, Any], generation: int, prefix: str = "") -> str:
    """Display name of the book: metadata name, else the archive file name."""
    base = Path(file_name).name
    for suffix in ARCHIVE_SUFFIXES:
        if base.lower().endswith(suffix):
            base = base[: -len(suffix)]
            break
    if generation == 2:
        name = metadata.get("fileName") or base
    else:
        name = metadata.get("nickname") or metadata.get("noteName") or base
    name = sanitize_name(f"{prefix}{name}")
    return name or "Untitled"


def detect_generation(names: list[str]) -> int:
    return 2 if _find_containing(names, GEN2_MARKER) else 1


# ---------------------------------------------------------------------------
# Per-generation page resolution
# ---------------------------------------------------------------------------


def _gen1_pages(
    zf: zipfile.ZipFile, names: list[str], want_strokes: bool
) -> list[tuple[int, str, str | None]]:
    """Return ``(page_number, bitmap_entry, stroke_entry)`` for generation 1."""
    list_entry = _find_containing(names, GEN1_PAGE_LIST)
    if list_entry is None:
        raise ValueError(f"missing {GEN1_PAGE_LIST}")
    page_list = _read_json(zf, list_entry)
    if not isinstance(page_list, list):
        raise ValueError(f"{GEN1_PAGE_LIST} is not a list")

    resolved: list[tuple[int, str, str | None]] = []
    for i, item in enumerate(page_list):
        number = i + 1
        page_id = item.get("pageId") if isinstance(item, dict) else None
        if not page_id:
            logger.debug("Page %d has no pageId; dropped", number)
            continue
        bitmap = _find_exact(names, f"{page_id}.png")
        if bitmap is None:
            logger.info("Bitmap for page %d (%s) not in archive; dropped", number, page_id)
            continue
        stroke = _find_exact(names, f"PATH_{page_id}.json") if want_strokes else None
        resolved.append((number, bitmap, stroke))
    return resolved


def _gen2_pages(
    zf: zipfile.ZipFile, names: list[str], want_strokes: bool
) -> list[tuple[int, str, str | None]]:
    """Return ``(page_number, bitmap_entry, stroke_entry)`` for generation 2."""
    res_entry = _find_containing(names, GEN2_RESOURCES)
    if res_entry is None:
        raise ValueError(f"missing {GEN2_RESOURCES}")
    resources = _read_json(zf, res_entry)
    if not isinstance(resources, list):
        raise ValueError(f"{GEN2_RESOURCES} is not a list")
    records = [r for r in resources if isinstance(r, dict)]

    bitmaps = [r for r in records if MAIN_BITMAP_TAG in str(r.get("fileName", ""))]
    paths = [r for r in records if r.get("resourceType") == STROKE_RESOURCE_TYPE]

    resolved: list[tuple[int, str, str | None]] = []
    for i, rec in enumerate(bitmaps):
        number = i + 1
        bitmap = _find_exact(names, str(rec["fileName"]))
        if bitmap is None:
            logger.info("Bitmap %s for page %d not in archive; dropped", rec["fileName"], number)
            continue
        stroke = None
        if want_strokes and i < len(paths) and paths[i].get("fileName"):
            stroke = _find_containing(names, str(paths[i]["fileName"]))
        resolved.append((number, bitmap, stroke))
    return resolved


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode_archive(
    zf: zipfile.ZipFile,
    names: list[str],
    file_name: str,
    *,
    want_strokes: bool = False,
    want_thumbnail: bool = False,
    prefix: str = "",
    matchers: tuple[AudioMatcher, ...] | list[AudioMatcher] = DEFAULT_MATCHERS,
) -> Book:
    """Decode an opened archive into a :class:`Book`.

    Args:
        zf: Open zip archive.
        names: Entry names inside the archive.
        file_name: Original archive file name (fallback book name).
        want_strokes: Decode stroke JSON (only needed for SVG output).
        want_thumbnail: Extract the thumbnail entry if present.
        prefix: Prepended to the book name.
        matchers: Audio matcher strategies in priority order.

    Raises:
        ValueError, KeyError, zipfile.BadZipFile, zlib.error: On structural
            problems; :func:`open_archive` wraps these in ArchiveError.
    """
    generation = detect_generation(names)
    meta_fragment = GEN2_MARKER if generation == 2 else GEN1_METADATA
    meta_entry = _find_containing(names, meta_fragment)
    metadata: dict[str, Any] = {}
    if meta_entry is not None:
        loaded = _read_json(zf, meta_entry)
        if isinstance(loaded, dict):
            metadata = loaded

    if generation == 2:
        resolved = _gen2_pages(zf, names, want_strokes)
    else:
        resolved = _gen1_pages(zf, names, want_strokes)

    audio_entries = list_audio_entries(names)
    audio_for = match_book_audio([number for number, _, _ in resolved], audio_entries, matchers)
    pages: list[Page] = []
    for number, bitmap, stroke in resolved:
        strokes = None
        if stroke is not None:
            strokes = _parse_strokes(_read_json(zf, stroke))
        audio = None
        audio_entry = audio_for[number]
        if audio_entry is not None:
            audio = AudioClip(entry_name=audio_entry, data=zf.read(audio_entry))
        pages.append(Page.create(number, zf.read(bitmap), strokes=strokes, audio=audio))

    thumbnail = None
    if want_thumbnail:
        thumb = _find_containing(names, "Thumbnail") or _find_containing(names, "thumbnai")
        if thumb is not None:
            thumbnail = zf.read(thumb)

    name = book_name_for(file_name, metadata, generation, prefix)
    logger.info(
        "Decoded '%s' (generation %d): %d pages, %d audio entries",
        name,
        generation,
        len(pages),
        len(audio_entries),
    )
    return Book(
        name=name,
        source_file=Path(file_name).name,
        generation=generation,
        metadata=metadata,
        pages=tuple(pages),
        thumbnail=thumbnail,
    )


def open_archive(path: Path, config: ImportConfig | None = None) -> Book:
    """Open a note archive from disk and decode it.

    Raises:
        ArchiveError: If the file is missing, not a zip, or structurally broken.
    """
    config = config or ImportConfig()
    if not path.is_file():
        raise ArchiveError(str(path), "file not found")
    try:
        with zipfile.ZipFile(path) as zf:
            return decode_archive(
                zf,
                zf.namelist(),
                path.name,
                want_strokes=config.wants_svg,
                want_thumbnail=config.include_thumbnails,
                prefix=config.file_prefix,
            )
    except zipfile.BadZipFile as e:
        raise ArchiveError(str(path), f"not a zip container ({e})") from e
    except (ValueError, KeyError, zlib.error, UnicodeDecodeError) as e:
        raise ArchiveError(str(path), str(e)) from e
