from __future__ import annotations

from datetime import date, datetime

import numpy as np
import pandas as pd
import pytest

from campaign_import.models.product import ColumnRole, ProductType, RecordStatus
from campaign_import.models.records import CommunityPost, DailyCount, DistributionContent, ReviewContent
from campaign_import.services.record_parser import (
    cell_text,
    parse_count,
    parse_date_value,
    parse_sheet,
    parse_workbook,
    validate_submission_number,
)

from tests.helpers import BLOG_HEADER, CAFE_HEADER, PLACE_HEADER, REVIEW_HEADER


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, ""),
        (float("nan"), ""),
        (12.0, "12"),
        (12.5, "12.5"),
        ("  Acme ", "Acme"),
        (7, "7"),
    ],
)
def test_cell_text(value, expected):
    assert cell_text(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        (datetime(2025, 1, 10, 13, 45), "2025-01-10"),
        (date(2025, 1, 10), "2025-01-10"),
        (pd.Timestamp("2025-01-10 08:00"), "2025-01-10"),
        (np.datetime64("2025-01-10"), "2025-01-10"),
        (45667, "2025-01-10"),  # Excel serial
        (45667.75, "2025-01-10"),
        (1, "1900-01-01"),
        (59, "1900-02-28"),
        (60, ""),  # 1900-02-29 は存在しない
        (61, "1900-03-01"),
        ("2025-01-10", "2025-01-10"),
        ("2025/01/10", "2025-01-10"),
        ("not-a-date", ""),
        ("2025-02-30", ""),
        ("", ""),
        (None, ""),
        (0, ""),
        (True, ""),
    ],
)
def test_parse_date_value(value, expected):
    assert parse_date_value(value) == expected


def test_validate_submission_number():
    assert validate_submission_number("KM-2025-0001", "KM") is None
    assert validate_submission_number("", "KM") == "submission number is required"
    msg = validate_submission_number("KM-25-1", "KM")
    assert msg is not None and "KM-2025-0001" in msg
    # 他商品の prefix は形式エラー
    assert validate_submission_number("RR-2025-0001", "KM") is not None


@pytest.mark.parametrize(
    "value,expected",
    [(3, 3), (3.0, 3), ("12", 12), (0, 0), (-1, None), (2.5, None), ("abc", None), (None, None), (True, None)],
)
def test_parse_count(value, expected):
    assert parse_count(value) == expected


def test_parse_sheet_valid_review_row(registry, review_row):
    rows = [REVIEW_HEADER, review_row(number="KM-2025-0001", status="승인됨", link="http://x")]
    records = parse_sheet(rows, ProductType.KAKAOMAP, registry)

    assert len(records) == 1
    r = records[0]
    assert r.is_valid and r.error_message is None
    assert r.row == 2
    assert r.submission_id is None
    assert isinstance(r.payload, ReviewContent)
    assert r.payload.status is RecordStatus.APPROVED
    assert r.date == "2025-01-10"


def test_parse_sheet_row_numbering_and_blank_rows(registry, review_row):
    rows = [
        REVIEW_HEADER,
        review_row(number="KM-2025-0001"),
        [None, "ignored", "x", "2025-01-10", "2025-01-10", "", "", ""],
        [],
        review_row(number="KM-2025-0002"),
    ]
    records = parse_sheet(rows, ProductType.KAKAOMAP, registry)
    assert [r.row for r in records] == [2, 5]


def test_parse_sheet_header_only(registry):
    assert parse_sheet([REVIEW_HEADER], ProductType.KAKAOMAP, registry) == []


@pytest.mark.parametrize(
    "overrides,fragment",
    [
        ({"number": "KM-2025-1"}, "submission number format error"),
        ({"text": ""}, "review text is required"),
        ({"registered": "not-a-date"}, "review registered date format error"),
        ({"receipt": ""}, "receipt date format error"),
    ],
)
def test_parse_sheet_validation_errors(registry, review_row, overrides, fragment):
    row = review_row(**{"number": "KM-2025-0001", **overrides})
    records = parse_sheet([REVIEW_HEADER, row], ProductType.KAKAOMAP, registry)
    assert len(records) == 1
    assert not records[0].is_valid
    assert fragment in records[0].error_message


def test_parse_sheet_first_failure_wins(registry, review_row):
    row = review_row(number="bad", text="", registered="nope")
    [record] = parse_sheet([REVIEW_HEADER, row], ProductType.KAKAOMAP, registry)
    assert record.error_message.startswith("submission number format error")


@pytest.mark.parametrize(
    "product_type,label", [(ProductType.KAKAOMAP, "완료"), (ProductType.RECEIPT, "unknown")]
)
def test_unknown_status_is_stored_as_pending(registry, review_row, product_type, label):
    prefix = registry.binding_for(product_type).business_key_prefix
    row = review_row(number=f"{prefix}-2025-0001", status=label)
    [record] = parse_sheet([REVIEW_HEADER, row], product_type, registry)
    assert record.is_valid
    assert record.error_message is None
    assert record.payload.status is RecordStatus.PENDING


def test_unknown_status_on_blog_row(registry):
    [record] = parse_sheet(
        [BLOG_HEADER, ["BD-2025-0003", "Acme", "title", "2025-02-01", "게시완료", "http://b", "id1"]],
        ProductType.BLOG_VIDEO,
        registry,
    )
    assert record.is_valid
    assert record.payload.fields()[ColumnRole.STATUS] == "pending"


def test_parse_sheet_distribution_and_community(registry):
    blog = parse_sheet(
        [BLOG_HEADER, ["BD-2025-0003", "Acme", "title", "2025-02-01", "", "http://b", "id1"]],
        ProductType.BLOG_VIDEO,
        registry,
    )
    cafe = parse_sheet(
        [CAFE_HEADER, ["CM-2025-0004", "Acme", "post", "2025-02-02", "대기", "http://c", "w1", "맘카페"]],
        ProductType.CAFE,
        registry,
    )
    assert isinstance(blog[0].payload, DistributionContent) and blog[0].is_valid
    assert isinstance(cafe[0].payload, CommunityPost) and cafe[0].is_valid
    assert cafe[0].payload.channel_name == "맘카페"
    assert cafe[0].payload.writer_id == "w1"


def test_parse_sheet_daily_count(registry):
    rows = [
        PLACE_HEADER,
        ["PL-2025-0001", "Acme", "2025-03-01", 40, "ok"],
        ["PL-2025-0001", "Acme", "2025-03-02", "", ""],
        ["PL-2025-0001", "Acme", "2025-03-03", -2, ""],
    ]
    records = parse_sheet(rows, ProductType.PLACE, registry)
    assert isinstance(records[0].payload, DailyCount)
    assert records[0].is_valid and records[0].payload.completed_count == 40
    assert not records[1].is_valid and "non-negative integer" in records[1].error_message
    assert not records[2].is_valid


def test_parse_workbook_routing_and_skips(registry, review_row):
    raw = {
        "K맵 리뷰": [REVIEW_HEADER, review_row(number="KM-2025-0001")],
        "메모": [["anything"]],
        "자동화배포": [BLOG_HEADER, ["BD-2025-0001", "Acme", "t", "2025-01-01", "", "", ""]],
        "영수증리뷰": [REVIEW_HEADER],
    }
    allowed = {ProductType.KAKAOMAP, ProductType.RECEIPT}
    sheets, skipped = parse_workbook(raw, allowed, registry)

    assert [s.sheet_name for s in sheets] == ["K맵 리뷰"]
    assert sheets[0].product_type is ProductType.KAKAOMAP
    assert sheets[0].valid_count == 1 and sheets[0].invalid_count == 0
    assert skipped == ["메모", "자동화배포"]


def test_parse_workbook_counts_match_records(registry, review_row):
    raw = {
        "K맵리뷰": [
            REVIEW_HEADER,
            review_row(number="KM-2025-0001"),
            review_row(number="KM-2025-0002", registered="bad"),
            review_row(number="KM-2025-0003", text=""),
        ]
    }
    sheets, _ = parse_workbook(raw, set(ProductType), registry)
    sheet = sheets[0]
    assert sheet.valid_count + sheet.invalid_count == len(sheet.records) == 3
    assert sheet.invalid_count == 2
