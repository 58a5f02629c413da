"""Per-book run guard.

Only one import run per book may be active.  A second request while one is
running is rejected with :class:`ImportInProgress`, never queued.  The claim
is a single check-and-set under a lock and is released on every exit path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from inkport.errors import ImportInProgress

logger = logging.getLogger(__name__)


class RunRegistry:
    """Tracks which books have an import in progress."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[str] = set()

    def is_active(self, book: str) -> bool:
        with self._lock:
            return book in self._active

    def try_claim(self, book: str) -> bool:
        with self._lock:
            if book in self._active:
                return False
            self._active.add(book)
            return True

    def release(self, book: str) -> None:
        with self._lock:
            self._active.discard(book)

    @contextmanager
    def claim(self, book: str) -> Iterator[None]:
        """Hold the run token for *book* for the duration of the block.

        Raises:
            ImportInProgress: If another run holds it.
        """
        if not self.try_claim(book):
            logger.warning("Rejected overlapping import of '%s'", book)
            raise ImportInProgress(book)
        logger.debug("Run token claimed for '%s'", book)
        try:
            yield
        finally:
            self.release(book)
            logger.debug("Run token released for '%s'", book)


# Process-wide default
registry = RunRegistry()
