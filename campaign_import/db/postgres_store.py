from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

import psycopg2
from psycopg2 import extensions

from ..errors import ResolutionError, StorageUnavailableError, UpsertError
from ..registry import SchemaRegistry, StorageBinding
from .stores import RecordKey, SubmissionProgress, SubmissionRef, UpsertOutcome

"""PostgreSQL submission lookup and content store (psycopg2).

Transactions are explicit: the deployment engine calls begin/commit/rollback
around each product group and every record is written behind a savepoint so
one failed row never poisons the group transaction.

Timeouts use `SET LOCAL statement_timeout`. A cancelled statement, a lost
connection or an operational error is systemic (StorageUnavailableError /
ResolutionError). Any other driver error is a record-level UpsertError.

Table and column names come from the registry, never from the workbook.
"""

__all__ = [
    "PostgresStore",
]

_SAVEPOINT = "record_upsert"

# 接続喪失・タイムアウト系 -> バッチ中断
_SYSTEMIC_ERRORS: tuple[type[Exception], ...] = (
    extensions.QueryCanceledError,
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
)


def _q(name: str) -> str:
    return f'"{name}"'


class PostgresStore:
    """SubmissionLookup + ContentStore backed by a psycopg2 cursor."""

    def __init__(
        self,
        cursor: Any,
        registry: SchemaRegistry,
        *,
        lookup_timeout_sec: float = 10.0,
        storage_timeout_sec: float = 10.0,
    ) -> None:
        self._cursor = cursor
        self._registry = registry
        self.lookup_timeout_ms = int(lookup_timeout_sec * 1000)
        self.storage_timeout_ms = int(storage_timeout_sec * 1000)

    # --- submission lookup -------------------------------------------------

    def lookup_submissions(self, numbers: Sequence[str]) -> list[SubmissionRef]:
        """Resolve all numbers with a single UNION ALL query.

        Numbers are grouped by prefix to the submission table that owns them;
        unknown prefixes are simply not found.
        """
        tables = self._registry.submission_tables()
        grouped: dict[str, list[str]] = defaultdict(list)
        for number in dict.fromkeys(numbers):
            table = tables.get(number.split("-", 1)[0])
            if table is not None:
                grouped[table].append(number)
        if not grouped:
            return []

        parts: list[str] = []
        params: list[Any] = []
        for table, nums in grouped.items():
            parts.append(
                f"SELECT submission_number, id::text, company_name FROM {_q(table)} "
                "WHERE submission_number = ANY(%s)"
            )
            params.append(nums)
        sql = " UNION ALL ".join(parts)

        try:
            self._cursor.execute("BEGIN")
            self._cursor.execute("SET LOCAL statement_timeout = %s", (self.lookup_timeout_ms,))
            self._cursor.execute(sql, params)
            rows = self._cursor.fetchall()
            self._cursor.execute("COMMIT")
        except psycopg2.Error as e:
            self._safe_rollback()
            raise ResolutionError(f"submission lookup failed: {str(e).strip()}") from e

        return [
            SubmissionRef(submission_number=r[0], submission_id=r[1], company_name=r[2] or "")
            for r in rows
        ]

    # --- transactions ------------------------------------------------------

    def begin(self) -> None:
        try:
            self._cursor.execute("BEGIN")
            self._cursor.execute("SET LOCAL statement_timeout = %s", (self.storage_timeout_ms,))
        except psycopg2.Error as e:
            raise StorageUnavailableError(f"cannot begin transaction: {str(e).strip()}") from e

    def commit(self) -> None:
        try:
            self._cursor.execute("COMMIT")
        except psycopg2.Error as e:
            self._safe_rollback()
            raise StorageUnavailableError(f"commit failed: {str(e).strip()}") from e

    def rollback(self) -> None:
        self._safe_rollback()

    def _safe_rollback(self) -> None:
        try:
            self._cursor.execute("ROLLBACK")
        except psycopg2.Error:
            # 接続断の場合は rollback 自体が失敗する; 元の例外を優先
            pass

    # --- content records ---------------------------------------------------

    def upsert_record(
        self, binding: StorageBinding, key: RecordKey, values: Mapping[str, Any]
    ) -> UpsertOutcome:
        table = _q(binding.storage_key)
        sk = binding.submission_key_column
        date_col = binding.date_column
        payload = {c: v for c, v in values.items() if c not in (sk, date_col)}

        self._execute_record("SAVEPOINT " + _SAVEPOINT)
        try:
            self._cursor.execute(
                f"SELECT id FROM {table} WHERE {_q(sk)} = %s AND {_q(date_col)} = %s "
                "LIMIT 1 FOR UPDATE",
                (key.submission_id, key.date),
            )
            existing = self._cursor.fetchone()
            if existing is not None:
                assignments = [f"{_q(c)} = %s" for c in payload]
                if binding.updated_at_column:
                    assignments.append(f"{_q(binding.updated_at_column)} = now()")
                self._cursor.execute(
                    f"UPDATE {table} SET {', '.join(assignments)} WHERE id = %s",
                    [*payload.values(), existing[0]],
                )
                outcome = UpsertOutcome.UPDATED
            else:
                row: dict[str, Any] = {sk: key.submission_id, date_col: key.date, **payload}
                if binding.order_column:
                    self._cursor.execute(
                        f"SELECT COALESCE(MAX({_q(binding.order_column)}), 0) + 1 FROM {table} "
                        f"WHERE {_q(sk)} = %s",
                        (key.submission_id,),
                    )
                    row[binding.order_column] = self._cursor.fetchone()[0]
                cols_sql = ",".join(_q(c) for c in row)
                placeholders = ",".join(["%s"] * len(row))
                self._cursor.execute(
                    f"INSERT INTO {table} ({cols_sql}) VALUES ({placeholders})",
                    list(row.values()),
                )
                outcome = UpsertOutcome.INSERTED
            self._cursor.execute("RELEASE SAVEPOINT " + _SAVEPOINT)
            return outcome
        except _SYSTEMIC_ERRORS as e:
            raise StorageUnavailableError(f"storage unavailable: {str(e).strip()}") from e
        except psycopg2.Error as e:
            self._execute_record("ROLLBACK TO SAVEPOINT " + _SAVEPOINT)
            raise UpsertError(str(e).strip()) from e

    def recount_content(self, binding: StorageBinding, submission_id: str) -> int:
        table = _q(binding.storage_key)
        if binding.count_column:
            sql = (
                f"SELECT COALESCE(SUM({_q(binding.count_column)}), 0) FROM {table} "
                f"WHERE {_q(binding.submission_key_column)} = %s"
            )
        else:
            sql = (
                f"SELECT COUNT(*) FROM {table} WHERE {_q(binding.submission_key_column)} = %s "
                f"AND {_q(binding.date_column)} IS NOT NULL"
            )
        row = self._fetch_one(sql, (submission_id,))
        return int(row[0]) if row else 0

    def fetch_progress_state(
        self, binding: StorageBinding, submission_id: str
    ) -> SubmissionProgress | None:
        row = self._fetch_one(
            f"SELECT total_count, status FROM {_q(binding.submission_table)} WHERE id = %s",
            (submission_id,),
        )
        if row is None:
            return None
        return SubmissionProgress(target_count=row[0], status=row[1])

    def update_progress(
        self, binding: StorageBinding, submission_id: str, percentage: int, status: str | None
    ) -> None:
        assignments = ["progress_percentage = %s", "updated_at = now()"]
        params: list[Any] = [percentage]
        if status is not None:
            assignments.append("status = %s")
            params.append(status)
        params.append(submission_id)
        self._execute_record("SAVEPOINT " + _SAVEPOINT)
        try:
            self._cursor.execute(
                f"UPDATE {_q(binding.submission_table)} SET {', '.join(assignments)} WHERE id = %s",
                params,
            )
            self._cursor.execute("RELEASE SAVEPOINT " + _SAVEPOINT)
        except _SYSTEMIC_ERRORS as e:
            raise StorageUnavailableError(f"storage unavailable: {str(e).strip()}") from e
        except psycopg2.Error as e:
            self._execute_record("ROLLBACK TO SAVEPOINT " + _SAVEPOINT)
            raise UpsertError(str(e).strip()) from e

    # --- helpers -----------------------------------------------------------

    def _execute_record(self, sql: str) -> None:
        try:
            self._cursor.execute(sql)
        except psycopg2.Error as e:
            raise StorageUnavailableError(f"storage unavailable: {str(e).strip()}") from e

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> tuple[Any, ...] | None:
        self._execute_record("SAVEPOINT " + _SAVEPOINT)
        try:
            self._cursor.execute(sql, params)
            row = self._cursor.fetchone()
            self._cursor.execute("RELEASE SAVEPOINT " + _SAVEPOINT)
            return row
        except _SYSTEMIC_ERRORS as e:
            raise StorageUnavailableError(f"storage unavailable: {str(e).strip()}") from e
        except psycopg2.Error as e:
            self._execute_record("ROLLBACK TO SAVEPOINT " + _SAVEPOINT)
            raise UpsertError(str(e).strip()) from e
