"""Page documents: one Markdown file per imported page.

Each document starts with a YAML front matter block carrying the engine's
bookkeeping (``book``, ``page``, ``image_hash``) and, when enabled, the
descriptive metadata.  The body has fixed sections::

    ---
    book: Field Notes
    page: 3
    image_hash: 9f2c61d0a8b4e377
    ...
    ---

    # Field Notes, page 3

    ## Audio

    [Field Notes_page_003.m4a](audio/Field Notes_page_003.m4a)

    ![Page 3](images/Field Notes_page_003.png)

    ## Transcription

    <!-- inkport:transcription-pending -->

``image_hash`` is the fingerprint of the original page bytes.  The change
analyzer prefers it over the manifest copy, so a document that was re-synced
from elsewhere still diffs correctly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import yaml

from inkport.fingerprint import Fingerprint, parse_fingerprint

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIM = "---"
AUDIO_HEADING = "## Audio"
TRANSCRIPTION_HEADING = "## Transcription"
TRANSCRIPTION_PENDING = "<!-- inkport:transcription-pending -->"
DEFAULT_TAGS = ("handwritten", "inkport")


@dataclass
class PageDocument:
    """Everything needed to render one page document."""

    book: str
    page: int
    total_pages: int
    image_hash: str
    source_file: str = ""
    imported_at: str = ""
    created: str = ""
    updated: str = ""
    image_link: str = ""  # relative to the book folder
    svg_link: str = ""
    audio_link: str = ""
    transcription: str | None = None
    tags: list[str] = field(default_factory=list)


def format_date(epoch_ms: int | None, date_format: str) -> str:
    """Format an epoch-milliseconds timestamp as iso / us / eu."""
    if not epoch_ms:
        return ""
    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=UTC)
    if date_format == "us":
        return dt.strftime("%m/%d/%Y")
    if date_format == "eu":
        return dt.strftime("%d/%m/%Y")
    return dt.strftime("%Y-%m-%d")


def _link(path: str) -> str:
    # Markdown link targets may not contain bare spaces
    return path.replace(" ", "%20")


def render_page_document(doc: PageDocument, *, include_metadata: bool = True) -> str:
    """Render a page document from scratch."""
    meta: dict[str, Any] = {
        "book": doc.book,
        "page": doc.page,
        "image_hash": doc.image_hash,
    }
    if include_metadata:
        meta["total_pages"] = doc.total_pages
        if doc.source_file:
            meta["source"] = doc.source_file
        if doc.imported_at:
            meta["imported"] = doc.imported_at
        if doc.created:
            meta["created"] = doc.created
        if doc.updated:
            meta["updated"] = doc.updated
        if doc.audio_link:
            meta["has_audio"] = True
        meta["tags"] = list(DEFAULT_TAGS) + [t for t in doc.tags if t not in DEFAULT_TAGS]

    lines = [
        FRONT_MATTER_DELIM,
        yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).rstrip("\n"),
        FRONT_MATTER_DELIM,
        "",
        f"# {doc.book}, page {doc.page}",
        "",
    ]

    if doc.audio_link:
        name = doc.audio_link.rsplit("/", 1)[-1]
        lines += [AUDIO_HEADING, "", f"[{name}]({_link(doc.audio_link)})", ""]

    if doc.image_link:
        lines += [f"![Page {doc.page}]({_link(doc.image_link)})", ""]
    if doc.svg_link:
        lines += [f"![Page {doc.page} (vector)]({_link(doc.svg_link)})", ""]

    lines += [TRANSCRIPTION_HEADING, ""]
    if doc.transcription:
        lines += [doc.transcription.strip(), ""]
    else:
        lines += [TRANSCRIPTION_PENDING, ""]

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------


def _split_front_matter(text: str) -> tuple[str | None, str]:
    """Return ``(yaml_text, body)``; yaml_text is None without front matter."""
    if not text.startswith(FRONT_MATTER_DELIM + "\n"):
        return None, text
    end = text.find("\n" + FRONT_MATTER_DELIM + "\n", len(FRONT_MATTER_DELIM))
    if end == -1:
        return None, text
    yaml_text = text[len(FRONT_MATTER_DELIM) + 1 : end + 1]
    body = text[end + len(FRONT_MATTER_DELIM) + 2 :]
    return yaml_text, body


def parse_front_matter(text: str) -> dict[str, Any]:
    """Front matter as a dict; empty if absent or not valid YAML."""
    yaml_text, _ = _split_front_matter(text)
    if yaml_text is None:
        return {}
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        logger.debug("Unparseable front matter: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def embedded_fingerprint(text: str) -> Fingerprint | None:
    """The ``image_hash`` recorded in a page document, if any."""
    value = parse_front_matter(text).get("image_hash")
    if value is None or str(value).strip() == "":
        return None
    return parse_fingerprint(str(value))


def set_embedded_fingerprint(text: str, fp: Fingerprint) -> str:
    """Return *text* with its ``image_hash`` replaced by *fp*.

    Documents without front matter get a minimal one prepended.
    """
    yaml_text, body = _split_front_matter(text)
    meta: dict[str, Any] = {}
    if yaml_text is not None:
        try:
            loaded = yaml.safe_load(yaml_text)
            if isinstance(loaded, dict):
                meta = loaded
        except yaml.YAMLError:
            meta = {}
    meta["image_hash"] = str(fp)
    dumped = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).rstrip("\n")
    return f"{FRONT_MATTER_DELIM}\n{dumped}\n{FRONT_MATTER_DELIM}\n{body}"


def _section(text: str, heading: str) -> str | None:
    """Body of a ``## `` section, or None if the heading is absent."""
    _, body = _split_front_matter(text)
    lines = body.splitlines()
    try:
        start = lines.index(heading)
    except ValueError:
        return None
    out = []
    for line in lines[start + 1 :]:
        if line.startswith("## "):
            break
        out.append(line)
    return "\n".join(out).strip()


def has_audio_section(text: str) -> bool:
    return _section(text, AUDIO_HEADING) is not None


def extract_transcription(text: str) -> str | None:
    """Completed transcription text, or None if pending or absent."""
    section = _section(text, TRANSCRIPTION_HEADING)
    if not section or TRANSCRIPTION_PENDING in section:
        return None
    return section
