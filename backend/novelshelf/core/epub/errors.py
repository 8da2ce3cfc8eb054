"""Error taxonomy for EPUB import.

Fatal errors (FileFormatError, PackageError) abort the import before anything
is persisted. The remaining kinds are recoverable: they are recorded as
ImportIssue entries and the import carries on in a degraded form.
"""

from typing import Optional


class EpubImportError(Exception):
    """Base class for every import error."""

    kind = "import_error"

    def __init__(self, message: str, ref: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.ref = ref


class FatalImportError(EpubImportError):
    """An error that aborts the whole import."""


class FileFormatError(FatalImportError):
    """The upload is not a usable EPUB container."""

    kind = "file_format"


class PackageError(FatalImportError):
    """The package document is missing required parts."""

    kind = "package"


class ResourceError(EpubImportError):
    """A manifest-referenced resource is missing or unreadable."""

    kind = "resource"


class StorageError(EpubImportError):
    """The cover could not be loaded or uploaded."""

    kind = "storage"


class ReconciliationError(EpubImportError):
    """One or more chapter writes failed against the content store.

    This is an aggregate; it never stops the remaining chapters from being
    processed.
    """

    kind = "reconciliation"

    def __init__(self, failed: list[int], errors: Optional[dict[int, str]] = None):
        self.failed = sorted(failed)
        self.errors = errors or {}
        noun = "chapter" if len(self.failed) == 1 else "chapters"
        super().__init__(f"{len(self.failed)} {noun} failed to save")
