"""
Custom exception hierarchy for memory_sync.

Domain failures (ExtractError, WriteError) are returned as values through the
transaction executor rather than raised across item boundaries; the rest are
raised where they occur.
"""
import traceback
from pathlib import Path
from typing import Iterable, List, Optional


class MemorySyncError(Exception):
    """Base exception for all memory_sync errors."""
    pass


class ConfigurationError(MemorySyncError):
    """Raised at startup when required configuration is missing or invalid."""
    pass


class UnsupportedMediaError(MemorySyncError):
    """Raised when a file with an unsupported extension reaches the extractor."""
    pass


class ExtractError(MemorySyncError):
    """Metadata could not be derived from a file (corrupt file, tool crash)."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class WriteError(MemorySyncError):
    """
    A failure after files were already written to disk.
    `paths` lists the physical files that must be cleaned up once the
    transaction for the item has been rolled back.
    """

    def __init__(self, message: str, paths: Iterable[Path] = ()):
        super().__init__(message)
        self.paths: List[Path] = list(paths)


class HashError(MemorySyncError):
    """Raised when file hashing fails."""
    pass


class DriveError(MemorySyncError):
    """Base class for cloud drive failures."""
    pass


class DriveAuthError(DriveError):
    """Credentials are missing, expired or lack permission (HTTP 401/403)."""
    pass


class DriveTransferError(DriveError):
    """Any non-authorization failure while talking to the drive."""
    pass


class BatchCancelled(MemorySyncError):
    """Raised when a running batch is cancelled. Never converted into an item failure."""

    def __init__(self, message: str = "Batch was cancelled.", partial_results: Optional[list] = None):
        super().__init__(message)
        # Input-ordered results of items that completed; None where an item never finished
        self.partial_results = partial_results or []


def format_one_line(exc: BaseException) -> str:
    """Formats an exception and its traceback as a single log line."""
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return trace.replace("\r", " ").replace("\n", " ").replace("\t", " ").strip()
