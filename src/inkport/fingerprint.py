"""Content fingerprints for page images.

A fingerprint is the unit of change detection: two page images are
"unchanged" only when their raw bytes hash to the same digest.  Besides real
digests there are three placeholder variants that live in the same manifest
field and are never trusted for equality:

* ``size-<n>``: low-confidence fallback when hashing failed.
* ``recovered-<size>-<mtime>``: written by manifest recovery, where the
  original bytes are no longer available.
* ``RESET-<timestamp>``: explicit user invalidation of a page.

Serialized forms round-trip through :func:`parse_fingerprint`.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 16  # hex chars kept from the SHA256 digest

SIZE_PREFIX = "size-"
RECOVERED_PREFIX = "recovered-"
RESET_PREFIX = "RESET-"


@dataclass(frozen=True)
class Digest:
    """Truncated SHA256 of the raw image bytes."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SizeFallback:
    """Byte length only; hashing the blob failed."""

    size: int

    def __str__(self) -> str:
        return f"{SIZE_PREFIX}{self.size}"


@dataclass(frozen=True)
class RecoveredPlaceholder:
    """Rebuilt from an on-disk artifact's size and mtime."""

    size: int
    mtime: int

    def __str__(self) -> str:
        return f"{RECOVERED_PREFIX}{self.size}-{self.mtime}"


@dataclass(frozen=True)
class ResetPlaceholder:
    """Explicitly invalidated by the user."""

    timestamp: str

    def __str__(self) -> str:
        return f"{RESET_PREFIX}{self.timestamp}"


Fingerprint = Digest | SizeFallback | RecoveredPlaceholder | ResetPlaceholder


def sha256_bytes(data: bytes) -> str:
    """Compute the full SHA256 hex digest of bytes."""
    return hashlib.sha256(data).hexdigest()


def fingerprint_bytes(data: bytes) -> Fingerprint:
    """Fingerprint raw image bytes.

    Returns a :class:`Digest` of the first :data:`DIGEST_LENGTH` hex chars.
    If the data cannot be hashed (not a bytes-like object, or a broken
    buffer), falls back to a :class:`SizeFallback` built from whatever length
    can be determined.
    """
    try:
        return Digest(sha256_bytes(data)[:DIGEST_LENGTH])
    except (TypeError, ValueError, BufferError) as e:
        try:
            size = len(data)
        except TypeError:
            size = 0
        logger.warning("Hashing failed (%s); using size fallback for %d bytes", e, size)
        return SizeFallback(size)


def parse_fingerprint(text: str) -> Fingerprint:
    """Parse a serialized fingerprint back into its variant.

    Malformed placeholders degrade to the least trusted reading rather than
    raising: a ``recovered-`` value that cannot be split still parses as a
    :class:`RecoveredPlaceholder`.
    """
    text = str(text).strip()
    if text.startswith(RESET_PREFIX):
        return ResetPlaceholder(text[len(RESET_PREFIX):])
    if text.startswith(RECOVERED_PREFIX):
        rest = text[len(RECOVERED_PREFIX):]
        size_s, _, mtime_s = rest.partition("-")
        try:
            return RecoveredPlaceholder(int(size_s), int(mtime_s))
        except ValueError:
            return RecoveredPlaceholder(0, 0)
    if text.startswith(SIZE_PREFIX):
        try:
            return SizeFallback(int(text[len(SIZE_PREFIX):]))
        except ValueError:
            return SizeFallback(0)
    return Digest(text)


def is_trusted(fp: Fingerprint) -> bool:
    """Only real digests can be compared for equality."""
    if isinstance(fp, Digest):
        return True
    if isinstance(fp, (SizeFallback, RecoveredPlaceholder, ResetPlaceholder)):
        return False
    raise TypeError(f"Not a fingerprint: {fp!r}")


def is_sentinel(fp: Fingerprint) -> bool:
    """True for the recovery and reset placeholders."""
    return isinstance(fp, (RecoveredPlaceholder, ResetPlaceholder))


def fingerprints_match(baseline: Fingerprint, current: Fingerprint) -> bool:
    """True when *current* is known to be byte-identical to *baseline*.

    Placeholders never match anything, including an identical placeholder.
    """
    if not (is_trusted(baseline) and is_trusted(current)):
        return False
    return baseline == current
