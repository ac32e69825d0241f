from __future__ import annotations

from collections.abc import Sequence

from ..models.deploy_result import DeployDetails, DeployResult, GroupStat, ProgressDebugInfo
from ..models.sheet_data import SheetData, ValidationResult

"""Result aggregation and SUMMARY line rendering.

The only place where batch-wide totals are computed. Everything here is a
pure fold over per-sheet / per-group outcomes.

SUMMARY formats:
  SUMMARY sheets={n} records={total} valid={valid} invalid={invalid} skipped_sheets={k}
  SUMMARY success={s} failed={f} created={c} progress_updated={p} elapsed_sec={e}
"""

__all__ = [
    "NO_UPDATE_STATUSES",
    "build_validation_result",
    "build_deploy_result",
    "displayed_errors",
    "render_validation_summary",
    "render_deploy_summary",
]

# progress_debug の status がこれらの場合、submission は更新されていない
NO_UPDATE_STATUSES = frozenset({"skipped", "count_error", "submission_error"})


def build_validation_result(
    sheets: Sequence[SheetData], skipped_sheets: Sequence[str] = ()
) -> ValidationResult:
    return ValidationResult(
        sheets=list(sheets),
        total_records=sum(len(s.records) for s in sheets),
        valid_records=sum(s.valid_count for s in sheets),
        invalid_records=sum(s.invalid_count for s in sheets),
        skipped_sheets=list(skipped_sheets),
    )


def build_deploy_result(
    group_stats: Sequence[GroupStat],
    errors: Sequence[str],
    progress_debug: Sequence[ProgressDebugInfo],
    *,
    eligible: int,
    batch_error: str | None = None,
) -> DeployResult:
    """Fold group outcomes and the progress trace into a DeployResult.

    After a batch-level error only committed groups count as successes and
    every other eligible record counts as failed.
    """
    committed = [g for g in group_stats if g.committed]
    success_count = sum(g.succeeded for g in committed)
    if batch_error is not None:
        failed_count = eligible - success_count
    else:
        failed_count = sum(g.failed for g in group_stats)
    created = sum(g.inserted for g in committed)
    progress_updated = sum(
        1 for p in progress_debug if p.update_error is None and p.status not in NO_UPDATE_STATUSES
    )

    all_errors = list(errors)
    if batch_error is not None:
        all_errors.append(batch_error)
        message = f"deployment aborted: {batch_error} ({success_count} records saved before the failure)"
    else:
        message = f"{success_count} records saved"
        if created:
            message += f" ({created} new content items)"
        if progress_updated:
            message += f" / {progress_updated} progress updates"
        if failed_count:
            message += f", {failed_count} failed"

    return DeployResult(
        success=batch_error is None,
        message=message,
        details=DeployDetails(success_count=success_count, failed_count=failed_count, errors=all_errors),
        progress_debug=list(progress_debug),
        group_stats=list(group_stats),
        progress_updated=progress_updated,
        content_items_created=created,
        batch_error=batch_error,
    )


def displayed_errors(errors: Sequence[str], limit: int = 5) -> list[str]:
    """First `limit` errors plus a '... and N more' line when truncated."""
    shown = list(errors[:limit])
    if len(errors) > limit:
        shown.append(f"... and {len(errors) - limit} more")
    return shown


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記回避
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return str(round(value, 3))


def render_validation_summary(result: ValidationResult) -> str:
    """Render the SUMMARY line for a ValidationResult.

    Examples:
        >>> r = ValidationResult(sheets=[], total_records=3, valid_records=2, invalid_records=1)
        >>> render_validation_summary(r)
        'SUMMARY sheets=0 records=3 valid=2 invalid=1 skipped_sheets=0'
    """
    return (
        f"SUMMARY sheets={len(result.sheets)} "
        f"records={result.total_records} "
        f"valid={result.valid_records} "
        f"invalid={result.invalid_records} "
        f"skipped_sheets={len(result.skipped_sheets)}"
    )


def render_deploy_summary(result: DeployResult) -> str:
    elapsed = sum(g.elapsed_seconds for g in result.group_stats)
    return (
        f"SUMMARY success={result.success_count} "
        f"failed={result.failed_count} "
        f"created={result.content_items_created} "
        f"progress_updated={result.progress_updated} "
        f"elapsed_sec={_format_number(elapsed)}"
    )
