"""Exception hierarchy for inkport.

Every error message includes: what happened, why, and what to do next.
Page-scoped failures during an import are never raised; they are collected
into the run summary instead (see :mod:`inkport.executor`).
"""


class InkportError(Exception):
    """Base class for all inkport errors."""


class ArchiveError(InkportError):
    """The note archive could not be opened or parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Could not read note archive '{path}': {reason}. "
            f"Nothing was written. Check that the file is a complete .note/.zip "
            f"export and re-export it from the device if it is truncated."
        )
        self.path = path
        self.reason = reason


class ManifestCorrupt(InkportError):
    """The manifest file exists but is not valid structured data."""

    def __init__(self, path: str, detail: str):
        super().__init__(
            f"Import manifest '{path}' is not valid: {detail}. "
            f"The file was not modified. Fix or delete it; when it is deleted "
            f"the next import rebuilds it from the existing page files."
        )
        self.path = path
        self.detail = detail


class ManifestWriteFailed(InkportError):
    """Both the normal and the fallback manifest write failed."""

    def __init__(self, path: str, detail: str):
        super().__init__(
            f"Could not write import manifest '{path}': {detail}. "
            f"Page files were written but the manifest still describes the "
            f"previous import. Check folder permissions and run the import again."
        )
        self.path = path
        self.detail = detail


class ImportInProgress(InkportError):
    """Another import run for the same book is still active."""

    def __init__(self, book: str):
        super().__init__(
            f"An import of '{book}' is already running. "
            f"Wait for it to finish before starting another one."
        )
        self.book = book


class SelectionError(InkportError):
    """A page selection could not be parsed."""

    def __init__(self, value: str, reason: str):
        super().__init__(
            f"Invalid page selection '{value}': {reason}. "
            f"Use page numbers and ranges such as '1-3,7', or one of the modes "
            f"new, modified, changed, all."
        )
        self.value = value
        self.reason = reason


class BookNotFound(InkportError):
    """No imported book with that name exists in the library."""

    def __init__(self, book: str, folder: str):
        super().__init__(
            f"No imported book '{book}' under '{folder}'. "
            f"Run an import first, or check the notes_folder setting in inkport.yaml."
        )
        self.book = book
        self.folder = folder


class ConfigError(InkportError):
    """Project configuration is missing or invalid."""

    def __init__(self, detail: str, hint: str = ""):
        msg = f"Configuration error: {detail}."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)
        self.detail = detail
        self.hint = hint
