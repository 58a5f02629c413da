"""Cooperative cancellation for import runs.

A run cannot be interrupted in the middle of a batch; pages already in
flight always finish.  The executor looks at the token between batches and,
if it is set, stops scheduling further pages.  Completed pages are still
recorded in the manifest.

The MCP tool wrapper installs a fresh token per call (see
:mod:`inkport.server`); callers driving :func:`inkport.executor.execute_import`
directly can pass their own ``threading.Event`` instead.
"""

from __future__ import annotations

import logging
import threading
from contextvars import ContextVar

logger = logging.getLogger(__name__)

_current_token: ContextVar[threading.Event | None] = ContextVar("_current_token", default=None)


def new_token() -> threading.Event:
    """Create a fresh cancellation token and install it as current."""
    token = threading.Event()
    _current_token.set(token)
    return token


def clear_token() -> None:
    """Remove the current token (cleanup after a call completes)."""
    _current_token.set(None)


def current_token() -> threading.Event | None:
    return _current_token.get()


def cancel_current() -> bool:
    """Set the current token.  Returns False if no token was active."""
    token = _current_token.get()
    if token is None:
        return False
    token.set()
    logger.info("Cancellation requested")
    return True


def is_cancelled(token: threading.Event | None = None) -> bool:
    """True if *token* (default: the current one) has been set."""
    token = token if token is not None else _current_token.get()
    return token is not None and token.is_set()
