"""Page artifact rendering: vector pages from strokes, raster backgrounds."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import fitz

from inkport.book import StrokePoint

logger = logging.getLogger(__name__)

PAGE_WIDTH = 1440
PAGE_HEIGHT = 1920
STROKE_GAP_MS = 100  # timestamp jump that starts a new pen stroke

_PASSTHROUGH_BACKGROUNDS = {"transparent", "#ffffff", "#fff"}


def split_strokes(points: Sequence[StrokePoint], gap_ms: float = STROKE_GAP_MS) -> list[list[tuple[float, float]]]:
    """Group raw pen samples into strokes at timestamp gaps."""
    paths: list[list[tuple[float, float]]] = []
    current: list[tuple[float, float]] = []
    prev_t: float | None = None
    for x, y, t in points:
        if prev_t is not None and abs(t - prev_t) > gap_ms and current:
            paths.append(current)
            current = []
        current.append((x, y))
        prev_t = t
    if current:
        paths.append(current)
    return paths


def _fmt(v: float) -> str:
    return f"{v:g}"


def strokes_to_svg(
    points: Sequence[StrokePoint],
    width: int = PAGE_WIDTH,
    height: int = PAGE_HEIGHT,
    gap_ms: float = STROKE_GAP_MS,
) -> str:
    """Render pen samples as an SVG document; empty string for no samples.

    Single-point strokes (taps) are skipped.
    """
    if not points:
        return ""
    elements = []
    for path in split_strokes(points, gap_ms):
        if len(path) < 2:
            continue
        d = f"M {_fmt(path[0][0])} {_fmt(path[0][1])}" + "".join(
            f" L {_fmt(x)} {_fmt(y)}" for x, y in path[1:]
        )
        elements.append(
            f'  <path d="{d}" stroke="black" stroke-width="2" fill="none" '
            f'stroke-linecap="round" stroke-linejoin="round"/>'
        )
    body = "\n".join(elements)
    return (
        f'<svg viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">\n'
        f"{body}\n</svg>\n"
    )


def parse_hex_color(color: str) -> tuple[float, float, float]:
    """``#RRGGBB`` / ``#RGB`` to an RGB float triple in 0..1."""
    h = color.strip().lstrip("#")
    if len(h) == 3:
        h = "".join(c * 2 for c in h)
    if len(h) != 6:
        raise ValueError(f"Not a hex color: {color!r}")
    return tuple(int(h[i : i + 2], 16) / 255 for i in (0, 2, 4))  # type: ignore[return-value]


def needs_compositing(color: str) -> bool:
    return color.strip().lower() not in _PASSTHROUGH_BACKGROUNDS


def composite_background(png: bytes, color: str) -> bytes:
    """Paint *color* behind a page image and return PNG bytes.

    White and transparent backgrounds return the input unchanged (pages are
    exported on white already).  The same function serves both the written
    artifact and previews.
    """
    if not needs_compositing(color):
        return png
    rgb = parse_hex_color(color)
    src = fitz.Pixmap(png)
    doc = fitz.open()
    try:
        page = doc.new_page(width=src.width, height=src.height)
        page.draw_rect(page.rect, color=None, fill=rgb, width=0)
        page.insert_image(page.rect, stream=png)
        out = page.get_pixmap(alpha=False)
        return out.tobytes("png")
    finally:
        doc.close()
