from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..registry import StorageBinding
from .stores import RecordKey, SubmissionProgress, SubmissionRef, UpsertOutcome

"""In-memory submission lookup and content store.

Used by the CLI mock mode (DISABLE_DB_CONNECT=1) and by the test-suite. Semantics mirror PostgresStore: rows keyed by
(submission id, primary date) per content table, upload order max + 1 on
insert, transactions restored from a snapshot on rollback.
"""

__all__ = [
    "StoredSubmission",
    "MemoryStore",
]


@dataclass
class StoredSubmission:
    submission_id: str
    submission_number: str
    company_name: str
    target_count: int | None = None
    status: str = "pending"
    progress_percentage: int = 0


class MemoryStore:
    """SubmissionLookup + ContentStore held in dictionaries."""

    def __init__(self, submissions: Iterable[StoredSubmission] = ()) -> None:
        self.submissions: dict[str, StoredSubmission] = {}
        # table -> (submission_id, date) -> row
        self.tables: dict[str, dict[tuple[str, str], dict[str, Any]]] = {}
        self.lookup_calls: list[list[str]] = []
        self._snapshot: tuple[dict[str, Any], dict[str, Any]] | None = None
        for s in submissions:
            self.add_submission(s)

    def add_submission(self, submission: StoredSubmission) -> None:
        self.submissions[submission.submission_number] = submission

    def submission_by_id(self, submission_id: str) -> StoredSubmission | None:
        for s in self.submissions.values():
            if s.submission_id == submission_id:
                return s
        return None

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    # --- SubmissionLookup --------------------------------------------------

    def lookup_submissions(self, numbers: Sequence[str]) -> list[SubmissionRef]:
        self.lookup_calls.append(list(numbers))
        found: list[SubmissionRef] = []
        for number in dict.fromkeys(numbers):
            s = self.submissions.get(number)
            if s is not None:
                found.append(SubmissionRef(number, s.submission_id, s.company_name))
        return found

    # --- ContentStore ------------------------------------------------------

    def begin(self) -> None:
        self._snapshot = (copy.deepcopy(self.tables), copy.deepcopy(self.submissions))

    def commit(self) -> None:
        self._snapshot = None

    def rollback(self) -> None:
        if self._snapshot is not None:
            self.tables, self.submissions = self._snapshot
            self._snapshot = None

    def upsert_record(
        self, binding: StorageBinding, key: RecordKey, values: Mapping[str, Any]
    ) -> UpsertOutcome:
        table = self.tables.setdefault(binding.storage_key, {})
        sk = binding.submission_key_column
        payload = {c: v for c, v in values.items() if c not in (sk, binding.date_column)}
        existing = table.get((key.submission_id, key.date))
        if existing is not None:
            existing.update(payload)
            return UpsertOutcome.UPDATED
        row: dict[str, Any] = {sk: key.submission_id, binding.date_column: key.date, **payload}
        if binding.order_column:
            orders = [
                r.get(binding.order_column) or 0
                for (sid, _), r in table.items()
                if sid == key.submission_id
            ]
            row[binding.order_column] = max(orders, default=0) + 1
        table[(key.submission_id, key.date)] = row
        return UpsertOutcome.INSERTED

    def recount_content(self, binding: StorageBinding, submission_id: str) -> int:
        rows = [
            r for (sid, _), r in self.tables.get(binding.storage_key, {}).items()
            if sid == submission_id
        ]
        if binding.count_column:
            return sum(int(r.get(binding.count_column) or 0) for r in rows)
        return sum(1 for r in rows if r.get(binding.date_column))

    def fetch_progress_state(
        self, binding: StorageBinding, submission_id: str
    ) -> SubmissionProgress | None:
        s = self.submission_by_id(submission_id)
        if s is None:
            return None
        return SubmissionProgress(target_count=s.target_count, status=s.status)

    def update_progress(
        self, binding: StorageBinding, submission_id: str, percentage: int, status: str | None
    ) -> None:
        s = self.submission_by_id(submission_id)
        if s is None:
            return
        s.progress_percentage = percentage
        if status is not None:
            s.status = status
