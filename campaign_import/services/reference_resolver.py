from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence

from ..db.stores import SubmissionLookup, SubmissionRef
from ..errors import ResolutionError
from ..models.records import ParsedRecord
from ..models.sheet_data import SheetData

"""Cross-reference resolver: submission numbers -> authoritative submission ids.

All distinct submission numbers of valid records, across every sheet, go to
the lookup collaborator in one call. The resolver only tightens validity:

- unknown number            -> invalid ("submission not found")
- company name disagrees    -> invalid, message names both companies
- match                     -> submission_id filled in

Records already invalid after parsing are passed through untouched.
"""

__all__ = [
    "SUBMISSION_NOT_FOUND",
    "collect_submission_numbers",
    "resolve_references",
]

logger = logging.getLogger(__name__)

SUBMISSION_NOT_FOUND = "submission not found"


def collect_submission_numbers(sheets: Sequence[SheetData]) -> list[str]:
    """Distinct submission numbers of valid records, in first-seen order."""
    numbers: dict[str, None] = {}
    for sheet in sheets:
        for record in sheet.records:
            if record.is_valid:
                numbers.setdefault(record.submission_number, None)
    return list(numbers)


def _company_mismatch(record: ParsedRecord, ref: SubmissionRef) -> str | None:
    entered = record.company_name.strip()
    authoritative = (ref.company_name or "").strip()
    if entered and entered != authoritative:
        return f"company name mismatch (sheet: {entered}, registered: {authoritative})"
    return None


def _resolve_record(record: ParsedRecord, refs: dict[str, SubmissionRef]) -> ParsedRecord:
    if not record.is_valid:
        return record
    ref = refs.get(record.submission_number)
    if ref is None:
        return dataclasses.replace(record, is_valid=False, error_message=SUBMISSION_NOT_FOUND)
    mismatch = _company_mismatch(record, ref)
    if mismatch:
        return dataclasses.replace(
            record, is_valid=False, error_message=mismatch, submission_id=ref.submission_id
        )
    return dataclasses.replace(record, submission_id=ref.submission_id)


def resolve_references(sheets: Sequence[SheetData], lookup: SubmissionLookup) -> list[SheetData]:
    """Resolve every valid record against the submission store.

    Raises ResolutionError when the batched lookup fails; records are never
    marked "not found" because of a failed call.
    """
    numbers = collect_submission_numbers(sheets)
    if not numbers:
        logger.debug("no valid records to resolve")
        return list(sheets)

    try:
        found = lookup.lookup_submissions(numbers)
    except ResolutionError:
        raise
    except Exception as e:
        raise ResolutionError(f"submission lookup failed: {e}") from e

    refs = {ref.submission_number: ref for ref in found}
    logger.info("resolved %d/%d submission numbers", len(refs), len(numbers))

    resolved: list[SheetData] = []
    for sheet in sheets:
        records = [_resolve_record(r, refs) for r in sheet.records]
        resolved.append(sheet.with_records(records))
    return resolved
