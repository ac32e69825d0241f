from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any

import numpy as np
import pandas as pd

from ..models.product import ColumnRole, ProductType, RecordFamily, RecordStatus, parse_status
from ..models.records import (
    CommunityPost,
    DailyCount,
    DistributionContent,
    ParsedRecord,
    Payload,
    ReviewContent,
)
from ..models.sheet_data import SheetData
from ..registry import SchemaRegistry, SheetSchema
from .progress import SheetProgressIndicator

"""Record parser: raw sheet rows -> ParsedRecord per row.

Row 0 of every sheet is the header. A data row at list index i is reported as
row i + 1 (the sheet's own 1-based numbering). Rows whose first cell is empty
are skipped. Each remaining row yields exactly one ParsedRecord, valid or not.

Validation stops at the first failure:
1. submission number present
2. submission number matches <prefix>-YYYY-NNNN
3. family required fields present
4. date fields present and YYYY-MM-DD after normalization
5. count-based families: non-negative integer count

Status never invalidates a row: an empty or unrecognized label becomes pending.
"""

__all__ = [
    "EXCEL_EPOCH",
    "cell_text",
    "parse_date_value",
    "is_valid_date_format",
    "validate_submission_number",
    "parse_count",
    "parse_sheet",
    "parse_workbook",
]

logger = logging.getLogger(__name__)

# Excel 1900 date system. Serial 60 is the nonexistent 1900-02-29, so serials
# from 61 count from 1899-12-30 and serials 1-59 from 1899-12-31.
EXCEL_EPOCH = datetime(1899, 12, 30)
_LEAP_BUG_SERIAL = 60

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def cell_text(value: Any) -> str:
    """Stringify a cell the way users typed it.

    None → "". Integral floats (pandas reads numeric id columns with gaps as
    float64) lose their ".0".
    """
    if value is None:
        return ""
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return ""
        if float(value).is_integer():
            return str(int(value))
    return str(value).strip()


def parse_date_value(value: Any) -> str:
    """Normalize a date cell to YYYY-MM-DD.

    Accepts native date/datetime/Timestamp values, numeric Excel serials and
    free text. Anything unparseable returns "".
    """
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, (bool, np.bool_)):
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, np.datetime64):
        return "" if np.isnat(value) else pd.Timestamp(value).date().isoformat()
    if isinstance(value, (int, float, np.integer, np.floating)):
        serial = float(value)
        if np.isnan(serial) or serial <= 0:
            return ""
        if int(serial) == _LEAP_BUG_SERIAL:
            return ""
        if serial < _LEAP_BUG_SERIAL:
            serial += 1
        try:
            return (EXCEL_EPOCH + timedelta(days=serial)).date().isoformat()
        except OverflowError:
            return ""
    text = str(value).strip()
    if not text:
        return ""
    if _DATE_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return ""
    with warnings.catch_warnings():
        # 形式推論の UserWarning 抑止
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return ""
    return parsed.date().isoformat()


def is_valid_date_format(text: str) -> bool:
    return bool(_DATE_RE.match(text))


def validate_submission_number(submission_number: str, prefix: str) -> str | None:
    """Return an error message, or None when the number is well formed."""
    if not submission_number:
        return "submission number is required"
    if not re.fullmatch(rf"{re.escape(prefix)}-\d{{4}}-\d{{4}}", submission_number):
        return f"submission number format error (e.g. {prefix}-2025-0001)"
    return None


def parse_count(value: Any) -> int | None:
    """Parse a completion count. Returns None unless a non-negative integer."""
    if value is None or isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, np.integer)):
        count = int(value)
    elif isinstance(value, (float, np.floating)):
        if np.isnan(value) or not float(value).is_integer():
            return None
        count = int(value)
    else:
        text = str(value).strip()
        if not re.fullmatch(r"\d+", text):
            return None
        count = int(text)
    return count if count >= 0 else None


# --- payload builders (RecordFamily dispatch) -------------------------------

def _build_review(v: Mapping[ColumnRole, Any]) -> ReviewContent:
    return ReviewContent(
        script_text=v[ColumnRole.CONTENT_TEXT],
        registered_date=v[ColumnRole.PRIMARY_DATE],
        receipt_date=v[ColumnRole.SECONDARY_DATE],
        status=v[ColumnRole.STATUS],
        link=v[ColumnRole.LINK],
        external_id=v[ColumnRole.EXTERNAL_ID],
    )


def _build_distribution(v: Mapping[ColumnRole, Any]) -> DistributionContent:
    return DistributionContent(
        title=v[ColumnRole.TITLE],
        published_date=v[ColumnRole.PRIMARY_DATE],
        status=v[ColumnRole.STATUS],
        link=v[ColumnRole.LINK],
        external_id=v[ColumnRole.EXTERNAL_ID],
    )


def _build_community_post(v: Mapping[ColumnRole, Any]) -> CommunityPost:
    return CommunityPost(
        title=v[ColumnRole.TITLE],
        published_date=v[ColumnRole.PRIMARY_DATE],
        status=v[ColumnRole.STATUS],
        link=v[ColumnRole.LINK],
        writer_id=v[ColumnRole.EXTERNAL_ID],
        channel_name=v[ColumnRole.CHANNEL_NAME],
    )


def _build_daily_count(v: Mapping[ColumnRole, Any]) -> DailyCount:
    return DailyCount(
        record_date=v[ColumnRole.PRIMARY_DATE],
        completed_count=v[ColumnRole.COMPLETED_COUNT],
        notes=v[ColumnRole.NOTES],
    )


PAYLOAD_BUILDERS: dict[RecordFamily, Callable[[Mapping[ColumnRole, Any]], Payload]] = {
    RecordFamily.REVIEW: _build_review,
    RecordFamily.DISTRIBUTION: _build_distribution,
    RecordFamily.COMMUNITY_POST: _build_community_post,
    RecordFamily.DAILY_COUNT: _build_daily_count,
}


def _is_blank_row(row: Sequence[Any] | None) -> bool:
    return not row or cell_text(row[0]) == ""


def _normalize_status(text: str) -> RecordStatus:
    status = parse_status(text)
    if status is None:
        logger.debug("unknown status label '%s', stored as pending", text)
        return RecordStatus.PENDING
    return status


def _normalize_cells(row: Sequence[Any], schema: SheetSchema) -> dict[ColumnRole, Any]:
    """Pick cells by schema position and normalize them per role."""
    values: dict[ColumnRole, Any] = {}
    for index, role in enumerate(schema.columns):
        raw = row[index] if index < len(row) else None
        if role in schema.dates:
            values[role] = parse_date_value(raw)
        elif role is schema.count:
            values[role] = parse_count(raw)
        elif role is ColumnRole.STATUS:
            values[role] = _normalize_status(cell_text(raw))
        else:
            values[role] = cell_text(raw)
    return values


def _first_error(
    values: Mapping[ColumnRole, Any],
    schema: SheetSchema,
    prefix: str,
) -> str | None:
    error = validate_submission_number(values[ColumnRole.SUBMISSION_NUMBER], prefix)
    if error:
        return error
    for role in schema.required:
        if not values.get(role):
            return f"{schema.label(role)} is required"
    for role in schema.dates:
        if not is_valid_date_format(values.get(role, "")):
            return f"{schema.label(role)} date format error (YYYY-MM-DD)"
    if schema.count is not None and values.get(schema.count) is None:
        return f"{schema.label(schema.count)} must be a non-negative integer"
    return None


def parse_sheet(
    raw_rows: Sequence[Sequence[Any]],
    product_type: ProductType,
    registry: SchemaRegistry,
) -> list[ParsedRecord]:
    """Parse one sheet's raw rows (header included) into ParsedRecords."""
    schema = registry.schema_for(product_type)
    prefix = registry.binding_for(product_type).business_key_prefix
    build = PAYLOAD_BUILDERS[schema.family]

    records: list[ParsedRecord] = []
    for index in range(1, len(raw_rows)):
        row = raw_rows[index]
        if _is_blank_row(row):
            continue
        values = _normalize_cells(row, schema)
        error = _first_error(values, schema, prefix)
        records.append(
            ParsedRecord(
                row=index + 1,
                submission_number=values[ColumnRole.SUBMISSION_NUMBER],
                company_name=values[ColumnRole.COMPANY_NAME],
                product_type=product_type,
                payload=build(values),
                is_valid=error is None,
                error_message=error,
            )
        )
    return records


def parse_workbook(
    raw_sheets: Mapping[str, Sequence[Sequence[Any]]],
    allowed: Iterable[ProductType],
    registry: SchemaRegistry,
    *,
    file_name: str = "",
) -> tuple[list[SheetData], list[str]]:
    """Route and parse every sheet of a workbook.

    Returns the parsed sheets (in workbook order) and the names of skipped
    sheets: unknown names and product types outside `allowed`. Sheets with no
    data rows produce no SheetData.
    """
    allowed_set = set(allowed)
    sheets: list[SheetData] = []
    skipped: list[str] = []

    routed: list[tuple[str, ProductType]] = []
    for sheet_name in raw_sheets:
        product_type = registry.resolve_product_type(sheet_name)
        if product_type is None:
            logger.warning("unknown sheet skipped: %s", sheet_name)
            skipped.append(sheet_name)
            continue
        if product_type not in allowed_set:
            logger.info("sheet=%s product=%s not in allowed set, skipped", sheet_name, product_type.value)
            skipped.append(sheet_name)
            continue
        routed.append((sheet_name, product_type))

    indicator = SheetProgressIndicator(file_name=file_name, total_sheets=len(routed))
    for sheet_name, product_type in routed:
        indicator.start_sheet(sheet_name)
        records = parse_sheet(raw_sheets[sheet_name], product_type, registry)
        indicator.finish_sheet(success=True, rows_processed=len(records))
        if not records:
            logger.info("sheet=%s has no data rows", sheet_name)
            continue
        sheet = SheetData.of(sheet_name, product_type, registry.display_name(product_type), records)
        logger.debug(
            "sheet=%s product=%s records=%d valid=%d invalid=%d",
            sheet_name,
            product_type.value,
            len(records),
            sheet.valid_count,
            sheet.invalid_count,
        )
        sheets.append(sheet)
    return sheets, skipped
