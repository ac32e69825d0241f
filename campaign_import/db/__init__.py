"""Storage collaborators: submission lookup and content stores."""

from .memory_store import MemoryStore, StoredSubmission
from .stores import (
    ContentStore,
    RecordKey,
    SubmissionLookup,
    SubmissionProgress,
    SubmissionRef,
    UpsertOutcome,
)

__all__ = [
    "ContentStore",
    "MemoryStore",
    "RecordKey",
    "StoredSubmission",
    "SubmissionLookup",
    "SubmissionProgress",
    "SubmissionRef",
    "UpsertOutcome",
]
