"""Pairing audio recordings with pages.

Device firmware has named audio files differently across versions
(``page1_rec.m4a``, ``audio/page_1.m4a``, ``audio/rec-0001.aac``, plain
timestamps...).  Pairing is therefore an ordered list of matcher strategies,
tried in priority order; the first strategy that returns an entry wins:

1. :class:`LiteralMatcher`: substring templates keyed by page number.
2. :class:`RegexIndexMatcher`: first integer after an ``audio`` path segment.
3. :class:`PositionalMatcher`: i-th page gets the i-th audio file.

Named strategies (``by_name = True``) run for every page first.  The
positional fallback only applies to pages left without a named match, and
never hands out an entry that is named for another page.

Add strategies by passing a custom list to :func:`match_book_audio`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol

AUDIO_DIR = "audio/"


def list_audio_entries(names: list[str]) -> list[str]:
    """Audio entries of an archive in lexicographic order."""
    return sorted(
        n for n in names
        if not n.endswith("/") and (n.startswith(AUDIO_DIR) or f"/{AUDIO_DIR}" in n)
    )


class AudioMatcher(Protocol):
    by_name: bool

    def match(self, page_number: int, position: int, entries: list[str]) -> str | None:
        """Return the audio entry for the page, or None."""


@dataclass(frozen=True)
class LiteralMatcher:
    """Match by literal substrings of the lowercased file name.

    Templates are formatted with ``n`` (page number); every template ends in a
    separator so ``page1`` never matches ``page10``.
    """

    by_name = True
    templates: tuple[str, ...] = (
        "page{n}.",
        "page{n}_",
        "page_{n}.",
        "page_{n}_",
        "page-{n}.",
        "page-{n}_",
        "p{n}.",
        "p{n}_",
    )

    def match(self, page_number: int, position: int, entries: list[str]) -> str | None:
        for template in self.templates:
            needle = template.format(n=page_number)
            for entry in entries:
                base = entry.rsplit("/", 1)[-1].lower()
                if base.startswith(needle) or f"_{needle}" in base or f"-{needle}" in base:
                    return entry
        return None


@dataclass(frozen=True)
class RegexIndexMatcher:
    """Match the first integer found after an ``audio`` path segment."""

    by_name = True
    pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r"(?:^|/)audio/(?:[^/]*/)*?[^/\d]*(\d+)", re.IGNORECASE)
    )

    def match(self, page_number: int, position: int, entries: list[str]) -> str | None:
        for entry in entries:
            m = self.pattern.search(entry)
            if m and int(m.group(1)) == page_number:
                return entry
        return None


@dataclass(frozen=True)
class PositionalMatcher:
    """Pair the page at *position* with the audio entry at the same index."""

    by_name = False

    def match(self, page_number: int, position: int, entries: list[str]) -> str | None:
        if 0 <= position < len(entries):
            return entries[position]
        return None


DEFAULT_MATCHERS: tuple[AudioMatcher, ...] = (
    LiteralMatcher(),
    RegexIndexMatcher(),
    PositionalMatcher(),
)


def match_audio(
    page_number: int,
    position: int,
    entries: list[str],
    matchers: tuple[AudioMatcher, ...] | list[AudioMatcher] = DEFAULT_MATCHERS,
) -> str | None:
    """Resolve the audio entry for one page.

    Args:
        page_number: 1-based page number.
        position: 0-based position of the page in the decoded page list.
        entries: Audio entries from :func:`list_audio_entries`.
        matchers: Strategies in priority order.
    """
    if not entries:
        return None
    for matcher in matchers:
        found = matcher.match(page_number, position, entries)
        if found is not None:
            return found
    return None


def match_book_audio(
    page_numbers: list[int],
    entries: list[str],
    matchers: tuple[AudioMatcher, ...] | list[AudioMatcher] = DEFAULT_MATCHERS,
) -> dict[int, str | None]:
    """Resolve audio for every page of a book.

    Named strategies run for all pages before any fallback strategy, so an
    entry named for one page is never paired with another page by position.

    Args:
        page_numbers: Page numbers in decoded order (index = position).
        entries: Audio entries from :func:`list_audio_entries`.
        matchers: Strategies in priority order.

    Returns:
        Mapping of page number to audio entry (None when unmatched).
    """
    named = [m for m in matchers if getattr(m, "by_name", True)]
    fallback = [m for m in matchers if not getattr(m, "by_name", True)]

    found: dict[int, str | None] = {}
    for position, number in enumerate(page_numbers):
        found[number] = match_audio(number, position, entries, named)

    claimed = {entry for entry in found.values() if entry is not None}
    for position, number in enumerate(page_numbers):
        if found[number] is not None or not entries:
            continue
        for matcher in fallback:
            entry = matcher.match(number, position, entries)
            if entry is not None and entry not in claimed:
                found[number] = entry
                claimed.add(entry)
                break
    return found
