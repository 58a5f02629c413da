"""In-memory representation of one decoded note archive."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from inkport.fingerprint import Fingerprint, fingerprint_bytes

# One pen sample: (x, y, timestamp_ms)
StrokePoint = tuple[float, float, float]


@dataclass(frozen=True)
class AudioClip:
    """An audio recording attached to a page."""

    entry_name: str  # path inside the archive
    data: bytes

    @property
    def extension(self) -> str:
        base = self.entry_name.rsplit("/", 1)[-1]
        if "." not in base:
            return ".m4a"
        return "." + base.rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class Page:
    """One numbered page: raster image plus optional strokes and audio.

    ``number`` is the join key with the manifest and must stay stable across
    re-exports of the same book.
    """

    number: int
    image: bytes
    fingerprint: Fingerprint
    strokes: tuple[StrokePoint, ...] | None = None
    audio: AudioClip | None = None

    @classmethod
    def create(
        cls,
        number: int,
        image: bytes,
        strokes: list[StrokePoint] | None = None,
        audio: AudioClip | None = None,
    ) -> Page:
        """Build a page, fingerprinting the image bytes."""
        return cls(
            number=number,
            image=image,
            fingerprint=fingerprint_bytes(image),
            strokes=tuple(strokes) if strokes is not None else None,
            audio=audio,
        )

    @property
    def has_audio(self) -> bool:
        return self.audio is not None


@dataclass(frozen=True)
class Book:
    """A decoded archive.  Immutable; owned by the run that decoded it."""

    name: str
    source_file: str
    generation: int
    metadata: dict[str, Any] = field(default_factory=dict)
    pages: tuple[Page, ...] = ()
    thumbnail: bytes | None = None

    def page(self, number: int) -> Page | None:
        for p in self.pages:
            if p.number == number:
                return p
        return None

    @property
    def page_numbers(self) -> list[int]:
        return [p.number for p in self.pages]

    @property
    def created(self) -> int | None:
        """Creation time in epoch milliseconds, when the archive records one."""
        value = self.metadata.get("createTime") or self.metadata.get("creationTime")
        return int(value) if value else None

    @property
    def updated(self) -> int | None:
        value = self.metadata.get("upTime") or self.metadata.get("lastModifiedTime")
        return int(value) if value else None
