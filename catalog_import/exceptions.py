"""
Import Exceptions Module
Error taxonomy shared by the import pipeline and its collaborators.
"""

from typing import Optional


class CatalogImportError(Exception):
    """Base class for all catalog import errors."""


class ImportAbortedError(CatalogImportError):
    """Fatal error that stops the whole run before any record is written."""


class StoreError(CatalogImportError):
    """Raised when the data store rejects or fails an operation."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AdminAPIError(StoreError):
    """Raised when the admin batch-operation endpoint returns an error payload."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation}: {message}", status_code)
        self.operation = operation


class MediaUploadError(CatalogImportError):
    """Raised when the media host could not ingest an image."""

    def __init__(self, source_url: str, message: str):
        super().__init__(f"Failed to upload {source_url}: {message}")
        self.source_url = source_url


class MediaDeleteError(CatalogImportError):
    """Raised when a hosted asset could not be removed from the media host."""
