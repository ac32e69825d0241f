from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from ..registry import StorageBinding

"""Collaborator interfaces used by the resolver and the deployment engine.

The submission store and the content stores are owned elsewhere; this package
only reads submissions (one batched lookup per upload) and writes content
records keyed by (submission id, primary date).

Implementations: PostgresStore (psycopg2) and MemoryStore (mock mode/tests).
"""

__all__ = [
    "SubmissionRef",
    "RecordKey",
    "SubmissionProgress",
    "UpsertOutcome",
    "SubmissionLookup",
    "ContentStore",
]


@dataclass(frozen=True)
class SubmissionRef:
    """Authoritative submission matched by its business key."""
    submission_number: str
    submission_id: str
    company_name: str


@dataclass(frozen=True)
class RecordKey:
    """Upsert key of a content record."""
    submission_id: str
    date: str  # primary date, YYYY-MM-DD


@dataclass(frozen=True)
class SubmissionProgress:
    target_count: int | None  # total_count set at submission creation
    status: str | None


class UpsertOutcome(Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


class SubmissionLookup(Protocol):
    def lookup_submissions(self, numbers: Sequence[str]) -> list[SubmissionRef]:
        """Resolve distinct submission numbers in one call.

        Numbers that are not returned are unknown. Raises ResolutionError when
        the lookup itself fails.
        """
        ...


class ContentStore(Protocol):
    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def upsert_record(
        self, binding: StorageBinding, key: RecordKey, values: Mapping[str, Any]
    ) -> UpsertOutcome:
        """Insert or overwrite the record at `key`.

        Raises UpsertError for a record-level failure and
        StorageUnavailableError for timeouts or a lost connection.
        """
        ...

    def recount_content(self, binding: StorageBinding, submission_id: str) -> int: ...

    def fetch_progress_state(
        self, binding: StorageBinding, submission_id: str
    ) -> SubmissionProgress | None: ...

    def update_progress(
        self, binding: StorageBinding, submission_id: str, percentage: int, status: str | None
    ) -> None: ...
