from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

from campaign_import.errors import SheetReadError
from campaign_import.excel.reader import frame_to_rows, read_workbook


def test_read_workbook_returns_raw_rows(write_workbook):
    path = write_workbook({
        "K맵리뷰": [["접수번호", "업체명"], ["KM-2025-0001", "Acme"], ["KM-2025-0002", None]],
        "메모": [["note"]],
    })

    sheets = read_workbook(path)

    assert list(sheets) == ["K맵리뷰", "메모"]
    assert sheets["K맵리뷰"][0] == ["접수번호", "업체명"]
    assert sheets["K맵리뷰"][2] == ["KM-2025-0002", None]


def test_na_like_text_is_kept_as_written(write_workbook):
    path = write_workbook({"S": [["h1", "h2", "h3", "h4"], ["NA", "N/A", "null", None]]})
    assert read_workbook(path)["S"][1] == ["NA", "N/A", "null", None]


def test_date_cells_arrive_as_timestamps(write_workbook):
    path = write_workbook({"S": [["date"], [datetime(2025, 1, 10)]]})
    value = read_workbook(path)["S"][1][0]
    assert isinstance(value, datetime)
    assert value.date().isoformat() == "2025-01-10"


def test_unreadable_workbook(temp_workdir: Path):
    bad = temp_workdir / "data" / "broken.xlsx"
    bad.write_bytes(b"not a zip")
    with pytest.raises(SheetReadError):
        read_workbook(bad)
    with pytest.raises(SheetReadError):
        read_workbook(temp_workdir / "data" / "missing.xlsx")


def test_frame_to_rows_nan_to_none():
    df = pd.DataFrame([[1.0, float("nan")], [None, "x"]])
    assert frame_to_rows(df) == [[1.0, None], [None, "x"]]
