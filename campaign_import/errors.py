from __future__ import annotations

"""Exception taxonomy for the import pipeline.

Parse and reference problems are carried as data on each ParsedRecord.
Exceptions are reserved for failures that stop a stage:

- ImportPipelineError: base for batch-level failures
- ResolutionError: the batched submission lookup failed or timed out
- StorageUnavailableError: storage timed out or the connection was lost
- UpsertError: a single record could not be written (batch continues)
"""

__all__ = [
    "ImportPipelineError",
    "ResolutionError",
    "StorageUnavailableError",
    "UpsertError",
    "SheetReadError",
]


class ImportPipelineError(Exception):
    """Base exception for batch-level pipeline failures."""
    pass


class ResolutionError(ImportPipelineError):
    """Raised when the batched submission lookup cannot complete."""
    pass


class StorageUnavailableError(ImportPipelineError):
    """Raised on storage timeouts or a lost connection."""
    pass


class SheetReadError(ImportPipelineError):
    """Raised when the uploaded workbook cannot be read."""
    pass


class UpsertError(Exception):
    """Per-record storage failure. Recorded and skipped."""
    pass
