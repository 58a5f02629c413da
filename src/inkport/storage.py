"""Host storage collaborator.

The import engine never touches the filesystem directly; it talks to a
:class:`Storage` using POSIX-style paths relative to the library root.
:class:`LocalStorage` is the implementation used by the CLI and the MCP
server.  Tests substitute subclasses that inject failures.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileStat:
    size: int
    mtime: float


class Storage(Protocol):
    """Minimum set of operations the engine needs from its host."""

    def exists(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_text(self, path: str, text: str) -> None: ...

    def write_text_direct(self, path: str, text: str) -> None: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...

    def delete(self, path: str) -> None: ...

    def list_dir(self, path: str) -> list[str]: ...

    def ensure_dir(self, path: str) -> None: ...

    def stat(self, path: str) -> FileStat: ...

    def copy(self, src: str, dst: str) -> None: ...


def parent_of(path: str) -> str:
    """Parent folder of a relative storage path ('' for top level)."""
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def join(*parts: str) -> str:
    """Join storage path segments, skipping empty ones."""
    return "/".join(p.strip("/") for p in parts if p and p.strip("/"))


class LocalStorage:
    """Storage rooted at a local folder.

    ``write_text`` / ``write_bytes`` are atomic (write to ``.tmp``, rename)
    and, like a host document API, refuse to write into a folder that does
    not exist yet.  ``write_text_direct`` is the lower-level primitive: it
    creates missing parents and writes in place.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Storage paths must be relative and stay inside the root: {path}")
        return self.root.joinpath(*rel.parts)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read_text(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def read_bytes(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def _atomic_write(self, target: Path, data: bytes) -> None:
        if not target.parent.is_dir():
            raise FileNotFoundError(f"Folder does not exist: {target.parent}")
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)

    def write_text(self, path: str, text: str) -> None:
        self._atomic_write(self._resolve(path), text.encode("utf-8"))

    def write_text_direct(self, path: str, text: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

    def write_bytes(self, path: str, data: bytes) -> None:
        self._atomic_write(self._resolve(path), data)

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    def list_dir(self, path: str) -> list[str]:
        folder = self._resolve(path)
        if not folder.is_dir():
            return []
        return sorted(p.name for p in folder.iterdir())

    def ensure_dir(self, path: str) -> None:
        # exist_ok covers a concurrent creator winning the race
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def stat(self, path: str) -> FileStat:
        st = self._resolve(path).stat()
        return FileStat(size=st.st_size, mtime=st.st_mtime)

    def copy(self, src: str, dst: str) -> None:
        target = self._resolve(dst)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self._resolve(src), target)
