from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from campaign_import.db.memory_store import StoredSubmission
from campaign_import.errors import ResolutionError, SheetReadError
from campaign_import.logging.error_log import ErrorLogBuffer
from campaign_import.models.error_record import BATCH_ERROR, DEPLOY_ERROR, PARSE_ERROR, REFERENCE_ERROR
from campaign_import.models.product import ProductType
from campaign_import.services.orchestrator import BATCH_SHEET, deploy_validated, validate_workbook

from tests.helpers import REVIEW_HEADER, FlakyStore, UnavailableStore


def test_validate_workbook_logs_parse_and_reference_errors(
    write_workbook, review_registry, acme_store, review_row
):
    path = write_workbook({
        "ReviewTypeA": [
            REVIEW_HEADER,
            review_row(),
            review_row(registered="not-a-date"),
            review_row(number="RA-2025-0404"),
        ],
        "Sheet1": [["unrelated"]],
    })
    error_log = ErrorLogBuffer()

    result = validate_workbook(
        path, set(ProductType), review_registry, acme_store, error_log=error_log
    )

    assert result.total_records == 3
    assert result.valid_records == 1
    assert result.skipped_sheets == ["Sheet1"]
    assert [(r.row, r.error_type) for r in error_log.records] == [(3, PARSE_ERROR), (4, REFERENCE_ERROR)]
    assert all(r.file == "upload.xlsx" and r.sheet == "ReviewTypeA" for r in error_log.records)


def test_validate_workbook_propagates_read_error(temp_workdir, review_registry, acme_store):
    with pytest.raises(SheetReadError):
        validate_workbook(temp_workdir / "data" / "missing.xlsx", set(ProductType), review_registry, acme_store)


def test_validate_workbook_propagates_lookup_failure(write_workbook, review_registry, review_row):
    path = write_workbook({"ReviewTypeA": [REVIEW_HEADER, review_row()]})
    lookup = MagicMock()
    lookup.lookup_submissions.side_effect = ResolutionError("timeout")
    with pytest.raises(ResolutionError):
        validate_workbook(path, set(ProductType), review_registry, lookup)


def test_deploy_validated_logs_record_errors(write_workbook, review_registry, review_row):
    store = FlakyStore([StoredSubmission("sub-1", "RA-2025-0001", "Acme", target_count=5)], ["2025-01-11"])
    path = write_workbook({
        "ReviewTypeA": [REVIEW_HEADER, review_row(), review_row(registered="2025-01-11")],
    })
    result = validate_workbook(path, set(ProductType), review_registry, store)
    error_log = ErrorLogBuffer()

    deployed = deploy_validated(result, store, review_registry, file_name=path.name, error_log=error_log)

    assert deployed.success_count == 1 and deployed.failed_count == 1
    [rec] = error_log.records
    assert (rec.sheet, rec.row, rec.error_type) == ("ReviewTypeA", 3, DEPLOY_ERROR)


def test_deploy_validated_logs_batch_error(write_workbook, review_registry, review_row):
    store = UnavailableStore([StoredSubmission("sub-1", "RA-2025-0001", "Acme")], "review_a_items")
    path = write_workbook({"ReviewTypeA": [REVIEW_HEADER, review_row()]})
    result = validate_workbook(path, set(ProductType), review_registry, store)
    error_log = ErrorLogBuffer()

    deployed = deploy_validated(result, store, review_registry, file_name=path.name, error_log=error_log)

    assert not deployed.success
    [rec] = error_log.records
    assert (rec.sheet, rec.row, rec.error_type) == (BATCH_SHEET, -1, BATCH_ERROR)


def test_na_like_cells_are_not_blanked(write_workbook, review_registry, acme_store, review_row):
    path = write_workbook({
        "ReviewTypeA": [
            REVIEW_HEADER,
            review_row(company="N/A"),
            review_row(text="NA", registered="2025-01-11"),
        ],
    })

    result = validate_workbook(path, set(ProductType), review_registry, acme_store)

    [mismatch, kept] = result.sheets[0].records
    assert mismatch.company_name == "N/A"
    assert not mismatch.is_valid
    assert "company name mismatch" in mismatch.error_message
    assert kept.is_valid
    assert kept.payload.script_text == "NA"
