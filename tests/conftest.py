"""Shared test fixtures for inkport."""

import json
import zipfile
from pathlib import Path

import pytest

from inkport.config import ImportConfig
from inkport.storage import LocalStorage

CREATED_MS = 1_700_000_000_000
UPDATED_MS = 1_700_086_400_000


def fake_png(tag: str) -> bytes:
    """Distinct page bytes; only hashed, never decoded, with a white background."""
    return b"\x89PNG\r\n\x1a\n" + tag.encode()


def _write_zip(path: Path, entries: dict[str, bytes | str]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return path


def build_gen1(
    path: Path,
    pages: list[bytes | None],
    *,
    name: str = "Field Notes",
    audio: dict[str, bytes] | None = None,
    strokes: dict[int, list] | None = None,
    thumbnail: bytes | None = None,
) -> Path:
    """Generation-1 archive.  ``None`` in *pages* lists the page but omits its bitmap."""
    entries: dict[str, bytes | str] = {
        "NotesBean.json": json.dumps(
            {"nickname": name, "createTime": CREATED_MS, "upTime": UPDATED_MS}
        ),
        "NoteList.json": json.dumps([{"pageId": f"pg{i + 1}"} for i in range(len(pages))]),
    }
    for i, data in enumerate(pages):
        if data is not None:
            entries[f"pg{i + 1}.png"] = data
    for number, points in (strokes or {}).items():
        entries[f"PATH_pg{number}.json"] = json.dumps(points)
    for entry, data in (audio or {}).items():
        entries[entry] = data
    if thumbnail is not None:
        entries["Thumbnail.png"] = thumbnail
    return _write_zip(path, entries)


def build_gen2(
    path: Path,
    pages: list[bytes | None],
    *,
    name: str = "Field Notes",
    audio: dict[str, bytes] | None = None,
    strokes: list[list] | None = None,
) -> Path:
    """Generation-2 archive with PageResource.json records."""
    resources = []
    entries: dict[str, bytes | str] = {
        "NoteFileInfo.json": json.dumps(
            {"fileName": name, "creationTime": CREATED_MS, "lastModifiedTime": UPDATED_MS}
        ),
    }
    for i, data in enumerate(pages):
        bmp = f"res/{i + 1}_mainBmp.png"
        resources.append({"fileName": f"{i + 1}_mainBmp.png", "resourceType": 1})
        if data is not None:
            entries[bmp] = data
    for i, points in enumerate(strokes or []):
        resources.append({"fileName": f"{i + 1}_path.json", "resourceType": 7})
        entries[f"res/{i + 1}_path.json"] = json.dumps(points)
    entries["PageResource.json"] = json.dumps(resources)
    for entry, data in (audio or {}).items():
        entries[entry] = data
    return _write_zip(path, entries)


@pytest.fixture
def make_gen1(tmp_path: Path):
    """Factory: ``make_gen1(pages, file_name=..., **kw)`` -> archive path."""

    def _make(pages, file_name="Field Notes.note", **kw):
        return build_gen1(tmp_path / file_name, pages, **kw)

    return _make


@pytest.fixture
def make_gen2(tmp_path: Path):
    def _make(pages, file_name="Field Notes.note", **kw):
        return build_gen2(tmp_path / file_name, pages, **kw)

    return _make


@pytest.fixture
def library(tmp_path: Path) -> Path:
    """Empty library root."""
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def storage(library: Path) -> LocalStorage:
    return LocalStorage(library)


@pytest.fixture
def config() -> ImportConfig:
    return ImportConfig(batch_delay=0)
