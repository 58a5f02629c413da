"""inkport MCP server: import handwritten note archives from an MCP client.

Run with: python -m inkport.server  (or the ``inkport-mcp`` script)
The server uses stdio transport for MCP client communication.
"""

from __future__ import annotations

import functools
import logging
import logging.handlers
import os
import re
import sys
import time
import traceback
from pathlib import Path

import anyio
import anyio.from_thread
import anyio.to_thread
from mcp.server.fastmcp import FastMCP

from inkport import hints as hints_mod
from inkport.cancellation import cancel_current, clear_token, current_token, new_token
from inkport.config import ImportConfig, load_config
from inkport.errors import InkportError
from inkport.ingest import (
    book_status,
    commit_import,
    prepare_import,
    rebuild_index as rebuild_book_index,
    reset_book_pages,
)
from inkport.paths import CONFIG_NAME, DOT_DIR
from inkport.selection import parse_page_spec, select_pages
from inkport.storage import LocalStorage
from inkport.transcribe import build_transcriber

mcp_server = FastMCP("inkport")

# ---------------------------------------------------------------------------
# Logging: stderr always, file handler added once the library root is known
# ---------------------------------------------------------------------------

logger = logging.getLogger("inkport")
logger.setLevel(logging.DEBUG)

# Stderr handler (WARNING+), visible in MCP client logs
_stderr_handler = logging.StreamHandler(sys.stderr)
_stderr_handler.setLevel(logging.WARNING)
_stderr_handler.setFormatter(
    logging.Formatter(
        "%(asctime)s [%(process)d] %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"
    )
)
logger.addHandler(_stderr_handler)

_file_handler: logging.Handler | None = None


def _attach_file_log(dot_dir: Path) -> None:
    """Attach a rotating file handler to .inkport/server.log (idempotent)."""
    global _file_handler
    if _file_handler is not None:
        return
    dot_dir.mkdir(parents=True, exist_ok=True)
    log_path = dot_dir / "server.log"
    fh = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=2_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(
        logging.Formatter("%(asctime)s [%(process)d] %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(fh)
    _file_handler = fh
    logger.info("inkport server started, log attached to %s", log_path)


# ---------------------------------------------------------------------------
# Tool invocation wrapper: timing, error classification, timeout and a
# cancellation token per call.
#
# Each tool call runs in a worker thread via anyio.to_thread so the event
# loop stays responsive.  On timeout the call returns at once and the token
# is set; the abandoned worker keeps running until it checks the token, so
# an import in progress stops scheduling batches and still records the
# finished pages.
# ---------------------------------------------------------------------------

_original_tool = mcp_server.tool

# Safety net; a large notebook with transcription can take minutes.
_TOOL_TIMEOUT = 600


def _sanitize_exc(exc: Exception) -> str:
    """Strip filesystem paths from exception messages."""
    msg = str(exc)
    msg = re.sub(r"/(?:Users|home|tmp|var|opt|etc)/\S+", "<path>", msg)
    msg = re.sub(r"[A-Z]:\\[\w\\]+", "<path>", msg)
    return msg.strip()


def _logging_tool(**kwargs):
    """Drop-in replacement for ``mcp_server.tool()`` that adds invocation logging.

    The returned wrapper is async: it dispatches the (sync) tool function to
    a worker thread.
    """
    decorator = _original_tool(**kwargs)

    def wrapper(fn):
        @functools.wraps(fn)
        async def logged(*args, **kw):
            name = fn.__name__
            logger.info("TOOL %s called", name)
            t0 = time.monotonic()
            new_token()

            def _run_in_thread():
                return fn(*args, **kw)

            try:
                try:
                    with anyio.fail_after(_TOOL_TIMEOUT):
                        result = await anyio.to_thread.run_sync(_run_in_thread, abandon_on_cancel=True)
                except TimeoutError:
                    cancel_current()
                    dt = time.monotonic() - t0
                    logger.error(
                        "TOOL %s timed out after %.0fs (limit %ds); cancellation token set",
                        name,
                        dt,
                        _TOOL_TIMEOUT,
                    )
                    raise InkportError(
                        f"Tool {name} timed out after {int(dt)}s. "
                        f"Pages already finished are kept; run it again to continue."
                    )

                dt = time.monotonic() - t0
                logger.info("TOOL %s completed in %.2fs (%d bytes)", name, dt, len(result))
                return result
            except InkportError as exc:
                dt = time.monotonic() - t0
                logger.warning(
                    "TOOL %s failed (%s) after %.2fs: %s", name, type(exc).__name__, dt, exc
                )
                raise
            except Exception as exc:
                dt = time.monotonic() - t0
                logger.error("TOOL %s crashed after %.2fs:\n%s", name, dt, traceback.format_exc())
                raise InkportError(
                    f"Internal error in {name}: {type(exc).__name__}: {_sanitize_exc(exc)}."
                ) from exc
            finally:
                clear_token()

        return decorator(logged)

    return wrapper


mcp_server.tool = _logging_tool  # type: ignore[assignment]


# ---------------------------------------------------------------------------
# Library root: set_root() overrides INKPORT_ROOT
# ---------------------------------------------------------------------------

_runtime_root: Path | None = None


def _library_root() -> Path:
    """Library root: runtime override > INKPORT_ROOT env var."""
    if _runtime_root is not None:
        return _runtime_root
    root = os.environ.get("INKPORT_ROOT")
    if root:
        return Path(root)
    raise InkportError(
        "No library root configured. Call set_root(path='/absolute/path') "
        "or set the INKPORT_ROOT environment variable."
    )


def _context() -> tuple[LocalStorage, ImportConfig]:
    root = _library_root()
    _attach_file_log(root / DOT_DIR)
    return LocalStorage(root), load_config(root)


def _archive_path(archive: str) -> Path:
    p = Path(archive)
    return p if p.is_absolute() else _library_root() / p


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp_server.tool()
def set_root(path: str) -> str:
    """Switch the library root directory at runtime."""
    global _runtime_root
    p = Path(path)
    if not p.is_absolute():
        return hints_mod.error("Path must be absolute.")
    if not p.is_dir():
        return hints_mod.error(f"Directory not found: {path}")
    _runtime_root = p
    _attach_file_log(p / DOT_DIR)
    config = load_config(p)
    logger.info("Library root set to %s", p)
    return hints_mod.response(
        {
            "root": str(p),
            "config": str(p / CONFIG_NAME) if (p / CONFIG_NAME).exists() else "defaults",
            "notes_folder": config.notes_folder,
            "output_format": config.output_format,
        },
        hints={"analyze": "analyze(archive='MyBook.note')"},
    )


@mcp_server.tool()
def analyze(archive: str) -> str:
    """Classify each page of a note archive as new, modified, unchanged or deleted.

    Nothing is imported.  Use the result to pick pages for import_note.
    """
    storage, config = _context()
    prepared = prepare_import(_archive_path(archive), storage, config)
    data = prepared.analysis.to_dict()
    data["total_pages"] = len(prepared.book.pages)
    data["recovered"] = prepared.recovered
    return hints_mod.response(data, hints=hints_mod.analysis_hints(archive, prepared.analysis.counts))


@mcp_server.tool()
def import_note(archive: str, select: str = "changed", pages: str = "") -> str:
    """Import pages of a note archive into the library.

    Args:
        archive: Path to the .note file (absolute, or relative to the root).
        select: new | modified | changed | all | range | pages.
        pages: Page spec for range/pages, e.g. '1-3,7'.
    """
    storage, config = _context()
    prepared = prepare_import(_archive_path(archive), storage, config)
    selected = select_pages(prepared.book, prepared.analysis, select, pages)
    summary = anyio.from_thread.run(
        functools.partial(
            commit_import,
            prepared,
            selected,
            storage,
            config,
            transcriber=build_transcriber(config),
            cancel_token=current_token(),
        )
    )
    failed = [e.page for e in summary.errors]
    return hints_mod.response(
        summary.to_dict(), hints=hints_mod.import_hints(summary.book, archive, failed)
    )


@mcp_server.tool()
def reset_pages(book: str, pages: str = "") -> str:
    """Force pages of an imported book to be rewritten on the next import.

    Args:
        book: Book name (folder under the notes folder).
        pages: Page spec, e.g. '2,5-7'.  Empty resets every page.
    """
    storage, config = _context()
    numbers = parse_page_spec(pages) if pages else None
    done = reset_book_pages(storage, config, book, numbers)
    return hints_mod.response({"book": book, "reset": done}, hints=hints_mod.book_hints(book))


@mcp_server.tool()
def status(book: str) -> str:
    """Manifest summary of an imported book."""
    storage, config = _context()
    return hints_mod.response(book_status(storage, config, book), hints=hints_mod.book_hints(book))


@mcp_server.tool()
def rebuild_index(book: str) -> str:
    """Regenerate the index document of an imported book."""
    storage, config = _context()
    path = rebuild_book_index(storage, config, book)
    return hints_mod.response({"book": book, "index": path}, hints=hints_mod.book_hints(book))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run_stdio() -> None:
    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await mcp_server._mcp_server.run(
            read_stream,
            write_stream,
            mcp_server._mcp_server.create_initialization_options(),
        )


def main():
    """Run the inkport MCP server."""
    root = os.environ.get("INKPORT_ROOT")
    if root:
        try:
            _attach_file_log(Path(root) / DOT_DIR)
        except OSError:
            logger.warning("Could not attach file log under %s", root)

    try:
        anyio.run(_run_stdio)
    except KeyboardInterrupt:
        logger.info("inkport server stopped (keyboard interrupt)")
    except Exception:
        logger.critical("inkport server crashed:\n%s", traceback.format_exc())
        raise


if __name__ == "__main__":
    main()
