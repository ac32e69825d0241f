from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from ..db.stores import ContentStore, SubmissionLookup
from ..excel.reader import read_workbook
from ..logging.error_log import ErrorLogBuffer
from ..models.deploy_result import DeployResult
from ..models.error_record import BATCH_ERROR, DEPLOY_ERROR, PARSE_ERROR, REFERENCE_ERROR, ErrorRecord
from ..models.product import ProductType
from ..models.records import ParsedRecord
from ..models.sheet_data import SheetData, ValidationResult
from ..registry import SchemaRegistry
from .deployment import deploy
from .record_parser import parse_workbook
from .reference_resolver import resolve_references
from .summary import build_validation_result

"""Pipeline orchestration for one uploaded workbook.

validate_workbook:  read -> parse -> resolve -> ValidationResult
deploy_validated:   ValidationResult -> DeployResult

The two steps are separate so the caller can show the validation result and
only deploy after confirmation. Both feed the JSON Lines error log:

- PARSE_ERROR      row invalid after parsing
- REFERENCE_ERROR  row invalidated by the submission lookup
- DEPLOY_ERROR     record-level upsert failure
- BATCH_ERROR      deployment aborted (sheet "<BATCH>", row -1)

Exceptions (SheetReadError, ResolutionError) propagate to the caller.
"""

__all__ = [
    "BATCH_SHEET",
    "validate_workbook",
    "deploy_validated",
]

logger = logging.getLogger(__name__)

BATCH_SHEET = "<BATCH>"


def _invalid_rows(sheets: Iterable[SheetData]) -> set[tuple[str, int]]:
    return {(s.sheet_name, r.row) for s in sheets for r in s.records if not r.is_valid}


def _log_invalid(
    error_log: ErrorLogBuffer,
    file_name: str,
    sheets: Iterable[SheetData],
    error_type: str,
    exclude: set[tuple[str, int]],
) -> None:
    for sheet in sheets:
        for r in sheet.records:
            if r.is_valid or (sheet.sheet_name, r.row) in exclude:
                continue
            error_log.append(
                ErrorRecord.create(
                    file=file_name,
                    sheet=sheet.sheet_name,
                    row=r.row,
                    error_type=error_type,
                    message=r.error_message or "",
                )
            )


def validate_workbook(
    path: Path,
    allowed: Iterable[ProductType],
    registry: SchemaRegistry,
    lookup: SubmissionLookup,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> ValidationResult:
    """Read, parse and resolve a workbook into a ValidationResult."""
    file_name = path.name
    raw = read_workbook(path)
    logger.info("file=%s sheets=%d", file_name, len(raw))

    sheets, skipped = parse_workbook(raw, allowed, registry, file_name=file_name)
    parse_invalid = _invalid_rows(sheets)

    resolved = resolve_references(sheets, lookup)
    result = build_validation_result(resolved, skipped)

    if error_log is not None:
        _log_invalid(error_log, file_name, sheets, PARSE_ERROR, exclude=set())
        _log_invalid(error_log, file_name, resolved, REFERENCE_ERROR, exclude=parse_invalid)

    logger.info(
        "file=%s records=%d valid=%d invalid=%d",
        file_name, result.total_records, result.valid_records, result.invalid_records,
    )
    return result


def deploy_validated(
    result: ValidationResult,
    store: ContentStore,
    registry: SchemaRegistry,
    *,
    file_name: str = "",
    error_log: ErrorLogBuffer | None = None,
) -> DeployResult:
    """Deploy a ValidationResult, recording failures in the error log."""
    sheet_of = {id(r): s.sheet_name for s in result.sheets for r in s.records}

    def _on_record_error(record: ParsedRecord, message: str) -> None:
        if error_log is None:
            return
        error_log.append(
            ErrorRecord.create(
                file=file_name,
                sheet=sheet_of.get(id(record), ""),
                row=record.row,
                error_type=DEPLOY_ERROR,
                message=message,
            )
        )

    deploy_result = deploy(result, store, registry, on_record_error=_on_record_error)

    if deploy_result.batch_error is not None and error_log is not None:
        error_log.append(
            ErrorRecord.create(
                file=file_name,
                sheet=BATCH_SHEET,
                row=-1,
                error_type=BATCH_ERROR,
                message=deploy_result.batch_error,
            )
        )
    logger.info("file=%s %s", file_name, deploy_result.message)
    return deploy_result
