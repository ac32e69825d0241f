from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from ..db.stores import ContentStore, RecordKey, UpsertOutcome
from ..errors import StorageUnavailableError, UpsertError
from ..models.deploy_result import (
    DeployDetails,
    DeployResult,
    GroupStat,
    ProgressDebugInfo,
    UpsertStatsAccumulator,
)
from ..models.product import ProductType
from ..models.records import ParsedRecord
from ..models.sheet_data import ValidationResult
from ..registry import SchemaRegistry, StorageBinding
from .progress import DeployProgressTracker
from .summary import build_deploy_result

"""Deployment engine: idempotent upsert of validated records + progress.

Only records that are valid and carry a resolved submission_id are deployed.
Records are grouped by product type; each group runs in its own transaction
and records are applied sequentially in sheet order, so for duplicate
(submission_id, date) keys the last row wins.

Failure policy:
- UpsertError on one record: recorded in errors[], next record continues
- StorageUnavailableError: current group rolled back, remaining groups and
  progress recomputation skipped, DeployResult.success = False
"""

__all__ = [
    "NO_VALID_RECORDS",
    "eligible_records",
    "progress_percentage",
    "recompute_progress",
    "deploy",
]

logger = logging.getLogger(__name__)

NO_VALID_RECORDS = "no valid records to deploy"

RecordErrorHook = Callable[[ParsedRecord, str], None]


def eligible_records(result: ValidationResult) -> list[ParsedRecord]:
    return [
        r for sheet in result.sheets for r in sheet.records if r.is_valid and r.submission_id
    ]


def progress_percentage(content_count: int, target_count: int) -> int:
    """round(100 * count / target), half up, clamped to [0, 100]."""
    if target_count <= 0:
        raise ValueError("target_count must be positive")
    count = max(content_count, 0)
    pct = (200 * count + target_count) // (2 * target_count)
    return max(0, min(100, pct))


def _group_by_product(records: list[ParsedRecord]) -> dict[ProductType, list[ParsedRecord]]:
    groups: dict[ProductType, list[ParsedRecord]] = {}
    for r in records:
        groups.setdefault(r.product_type, []).append(r)
    return groups


def _deploy_group(
    product_type: ProductType,
    records: list[ParsedRecord],
    store: ContentStore,
    registry: SchemaRegistry,
    tracker: DeployProgressTracker,
    on_record_error: RecordErrorHook | None = None,
) -> tuple[GroupStat, list[str], list[str]]:
    """Upsert one product group inside a transaction.

    Returns the group stat, its record-level errors and the touched
    submission ids. StorageUnavailableError propagates to the caller.
    """
    binding = registry.binding_for(product_type)
    label = registry.display_name(product_type)
    tracker.start_group(label)

    start = datetime.now(UTC)
    accumulator = UpsertStatsAccumulator()
    succeeded = failed = inserted = updated = 0
    errors: list[str] = []
    touched: dict[str, None] = {}

    store.begin()
    for record in records:
        sid = record.submission_id or ""
        key = RecordKey(submission_id=sid, date=record.date)
        values = binding.column_values(record.payload.fields())
        t0 = time.perf_counter()
        try:
            outcome = store.upsert_record(binding, key, values)
        except UpsertError as e:
            failed += 1
            errors.append(f"{label} {sid[:8]} (row {record.row}): {e}")
            logger.warning("upsert failed product=%s submission=%s row=%d: %s",
                           product_type.value, sid, record.row, e)
            if on_record_error is not None:
                on_record_error(record, str(e))
            tracker.advance(success=False)
            continue
        finally:
            accumulator.add_upsert_time(time.perf_counter() - t0)
        succeeded += 1
        if outcome is UpsertOutcome.INSERTED:
            inserted += 1
        else:
            updated += 1
        touched.setdefault(sid, None)
        tracker.advance(success=True)
    store.commit()

    elapsed = (datetime.now(UTC) - start).total_seconds()
    _, avg, p95 = accumulator.get_stats()
    stat = GroupStat(
        product_type=product_type,
        attempted=len(records),
        succeeded=succeeded,
        failed=failed,
        inserted=inserted,
        updated=updated,
        committed=True,
        elapsed_seconds=elapsed,
        avg_upsert_seconds=avg,
        p95_upsert_seconds=p95,
    )
    logger.info(
        "product=%s attempted=%d succeeded=%d failed=%d inserted=%d updated=%d",
        product_type.value, len(records), succeeded, failed, inserted, updated,
    )
    return stat, errors, list(touched)


def _recompute_one(binding: StorageBinding, submission_id: str, store: ContentStore) -> ProgressDebugInfo:
    try:
        count = store.recount_content(binding, submission_id)
    except UpsertError as e:
        return ProgressDebugInfo(submission_id, None, 0, 0, "count_error", str(e))

    try:
        state = store.fetch_progress_state(binding, submission_id)
    except UpsertError as e:
        return ProgressDebugInfo(submission_id, count, 0, 0, "submission_error", str(e))
    if state is None:
        return ProgressDebugInfo(submission_id, count, 0, 0, "submission_error", "submission not found")

    target = state.target_count or 0
    if target <= 0:
        logger.info("submission=%s has no target count, progress skipped", submission_id)
        return ProgressDebugInfo(submission_id, count, 0, 0, "skipped")

    pct = progress_percentage(count, target)
    new_status = binding.progress_rule.derive(pct, count, state.status) if binding.progress_rule else None
    try:
        store.update_progress(binding, submission_id, pct, new_status)
    except UpsertError as e:
        return ProgressDebugInfo(submission_id, count, target, pct, state.status or "", str(e))
    return ProgressDebugInfo(submission_id, count, target, pct, new_status or state.status or "")


def recompute_progress(
    affected: Mapping[str, StorageBinding], store: ContentStore
) -> list[ProgressDebugInfo]:
    """Recompute progress of every affected submission in one transaction."""
    debug: list[ProgressDebugInfo] = []
    if not affected:
        return debug
    store.begin()
    try:
        for submission_id, binding in affected.items():
            debug.append(_recompute_one(binding, submission_id, store))
        store.commit()
    except StorageUnavailableError:
        store.rollback()
        raise
    return debug


def deploy(
    validation_result: ValidationResult,
    store: ContentStore,
    registry: SchemaRegistry,
    *,
    on_record_error: RecordErrorHook | None = None,
) -> DeployResult:
    """Commit a reviewed ValidationResult and recompute progress.

    on_record_error is called with the record and the message of every
    record-level upsert failure.
    """
    records = eligible_records(validation_result)
    if not records:
        return DeployResult(
            success=False, message=NO_VALID_RECORDS, details=DeployDetails(0, 0, [])
        )

    stats: list[GroupStat] = []
    errors: list[str] = []
    affected: dict[str, StorageBinding] = {}
    batch_error: str | None = None

    with DeployProgressTracker(len(records)) as tracker:
        for product_type, group in _group_by_product(records).items():
            try:
                stat, group_errors, touched = _deploy_group(
                    product_type, group, store, registry, tracker, on_record_error
                )
            except StorageUnavailableError as e:
                store.rollback()
                logger.error("deployment aborted at product=%s: %s", product_type.value, e)
                stats.append(
                    GroupStat(product_type, attempted=len(group), succeeded=0, failed=len(group), committed=False)
                )
                batch_error = f"{registry.display_name(product_type)}: {e}"
                break
            stats.append(stat)
            errors.extend(group_errors)
            binding = registry.binding_for(product_type)
            for sid in touched:
                affected.setdefault(sid, binding)

    progress_debug: list[ProgressDebugInfo] = []
    if batch_error is None:
        try:
            progress_debug = recompute_progress(affected, store)
        except StorageUnavailableError as e:
            logger.error("progress recomputation aborted: %s", e)
            batch_error = f"progress recomputation: {e}"

    return build_deploy_result(
        stats, errors, progress_debug, eligible=len(records), batch_error=batch_error
    )
