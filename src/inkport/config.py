"""Project configuration: loads and validates ``inkport.yaml``.

The config file lives at the root of the library (the folder the storage
collaborator is rooted at).  It decides where imported books go, how pages
are rendered, and how the executor batches its work.

If no config exists, defaults are used; create_default() writes a commented
starter file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from inkport.errors import ConfigError
from inkport.paths import CONFIG_NAME

OUTPUT_FORMATS = ("png", "svg", "both")
DATE_FORMATS = ("iso", "us", "eu")

_HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass
class TranscriptionConfig:
    """Optional transcription collaborator settings."""

    enabled: bool = False
    endpoint: str = ""
    api_key_env: str = "INKPORT_TRANSCRIBE_KEY"
    timeout: float = 60.0


@dataclass
class ImportConfig:
    """Parsed inkport.yaml."""

    notes_folder: str = "Handwritten Notes"
    images_subdir: str = "images"
    audio_subdir: str = "audio"
    output_format: str = "png"
    background_color: str = "#FFFFFF"
    include_metadata: bool = True
    include_timestamps: bool = True
    include_thumbnails: bool = False
    create_index: bool = True
    date_format: str = "iso"
    file_prefix: str = ""
    batch_size: int = 5
    batch_delay: float = 0.05  # seconds between batches
    history_max: int = 50
    backup_manifest: bool = True
    backup_keep: int = 5
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)

    @property
    def wants_png(self) -> bool:
        return self.output_format in ("png", "both")

    @property
    def wants_svg(self) -> bool:
        return self.output_format in ("svg", "both")


_DEFAULT_CONFIG = """\
# inkport configuration
# Controls where imported note archives go and how pages are rendered.

# Folder (relative to this file) that receives one sub-folder per book.
notes_folder: "Handwritten Notes"

# Sub-folders inside each book folder.
images_subdir: images
audio_subdir: audio

# png: raster page images; svg: vector pages rebuilt from pen strokes;
# both: write both, embed the PNG.
output_format: png

# Background painted behind transparent page images ("transparent" keeps alpha).
# Changing this re-renders page images on the next import even when the
# handwriting itself did not change.
background_color: "#FFFFFF"

include_metadata: true
include_timestamps: true
include_thumbnails: false
create_index: true

# iso (YYYY-MM-DD), us (MM/DD/YYYY) or eu (DD/MM/YYYY)
date_format: iso

# Prepended to book names.
file_prefix: ""

# Pages processed concurrently per batch, and pause between batches (seconds).
batch_size: 5
batch_delay: 0.05

# Import history entries kept in the manifest (newest first).
history_max: 50

# Copy the manifest to .inkport/backups/ before each import rewrites it.
backup_manifest: true
backup_keep: 5

# Optional handwriting transcription over HTTP.  The endpoint receives the
# page PNG and answers {"text": "...", "tags": ["..."]}.
transcription:
  enabled: false
  endpoint: ""
  api_key_env: INKPORT_TRANSCRIBE_KEY
  timeout: 60
"""


def config_path(root: Path) -> Path:
    """Path to inkport.yaml inside the library root."""
    return root / CONFIG_NAME


def create_default(root: Path) -> Path:
    """Write a starter inkport.yaml if it doesn't exist. Returns the path."""
    p = config_path(root)
    if not p.exists():
        root.mkdir(parents=True, exist_ok=True)
        p.write_text(_DEFAULT_CONFIG, encoding="utf-8")
    return p


def _as_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _as_number(data: dict[str, Any], key: str, default: float, minimum: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{key}' must be at least {minimum}, got {value}")
    return value


def _parse_transcription(raw: Any) -> TranscriptionConfig:
    if raw is None:
        return TranscriptionConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"'transcription' must be a mapping, got {type(raw).__name__}")
    return TranscriptionConfig(
        enabled=_as_bool(raw, "enabled", False),
        endpoint=str(raw.get("endpoint", "") or ""),
        api_key_env=str(raw.get("api_key_env", "INKPORT_TRANSCRIBE_KEY")),
        timeout=float(_as_number(raw, "timeout", 60.0, 1)),
    )


def parse_config(data: dict[str, Any]) -> ImportConfig:
    """Validate a config mapping and build an :class:`ImportConfig`."""
    output_format = str(data.get("output_format", "png")).lower()
    if output_format not in OUTPUT_FORMATS:
        raise ConfigError(
            f"Unknown output_format '{output_format}'",
            hint=f"Use one of: {', '.join(OUTPUT_FORMATS)}.",
        )

    date_format = str(data.get("date_format", "iso")).lower()
    if date_format not in DATE_FORMATS:
        raise ConfigError(
            f"Unknown date_format '{date_format}'",
            hint=f"Use one of: {', '.join(DATE_FORMATS)}.",
        )

    background = str(data.get("background_color", "#FFFFFF")).strip()
    if background.lower() != "transparent" and not _HEX_COLOR_RE.match(background):
        raise ConfigError(
            f"Invalid background_color '{background}'",
            hint="Use a hex color such as '#FFFFFF' or the word 'transparent'.",
        )

    notes_folder = str(data.get("notes_folder", "Handwritten Notes")).strip("/")
    if not notes_folder or ".." in notes_folder.split("/"):
        raise ConfigError(f"Invalid notes_folder '{notes_folder}'")

    return ImportConfig(
        notes_folder=notes_folder,
        images_subdir=str(data.get("images_subdir", "images")).strip("/") or "images",
        audio_subdir=str(data.get("audio_subdir", "audio")).strip("/") or "audio",
        output_format=output_format,
        background_color=background,
        include_metadata=_as_bool(data, "include_metadata", True),
        include_timestamps=_as_bool(data, "include_timestamps", True),
        include_thumbnails=_as_bool(data, "include_thumbnails", False),
        create_index=_as_bool(data, "create_index", True),
        date_format=date_format,
        file_prefix=str(data.get("file_prefix", "") or ""),
        batch_size=int(_as_number(data, "batch_size", 5, 1)),
        batch_delay=float(_as_number(data, "batch_delay", 0.05, 0)),
        history_max=int(_as_number(data, "history_max", 50, 1)),
        backup_manifest=_as_bool(data, "backup_manifest", True),
        backup_keep=int(_as_number(data, "backup_keep", 5, 0)),
        transcription=_parse_transcription(data.get("transcription")),
    )


def load_config(root: Path) -> ImportConfig:
    """Load and validate inkport.yaml. Returns defaults if file is missing."""
    p = config_path(root)
    if not p.exists():
        return ImportConfig()

    raw = p.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {p}, got {type(data).__name__}")

    return parse_config(data)
