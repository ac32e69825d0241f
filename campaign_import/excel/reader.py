from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

import pandas as pd

from ..errors import SheetReadError

"""Workbook reader.

Reads every sheet of an uploaded .xlsx as a raw grid (list of rows, each a
list of cell values). Row 0 is the header; the record parser decides what the
cells mean. Only empty cells become None; text such as "NA", "N/A" or "null"
is kept as written. Date cells arrive as pandas Timestamps.
"""

__all__ = [
    "read_workbook",
    "frame_to_rows",
]


def read_workbook(path: Path) -> dict[str, list[list[Any]]]:
    """Read every sheet of an Excel file as raw rows keyed by sheet name.

    pandas' default NA strings are disabled; an empty cell is the only
    missing value.
    """
    try:
        xls = pd.ExcelFile(path)
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        raise SheetReadError(f"cannot read workbook {path}: {e}") from e

    sheets: dict[str, list[list[Any]]] = {}
    with xls:
        for name in xls.sheet_names:
            df = xls.parse(name, header=None, keep_default_na=False, na_values=[""])
            sheets[str(name)] = frame_to_rows(df)
    return sheets


def frame_to_rows(df: pd.DataFrame) -> list[list[Any]]:
    """Convert a header-less DataFrame into a list of rows with NaN → None."""
    rows: list[list[Any]] = []
    for raw in df.itertuples(index=False, name=None):
        rows.append([None if _is_missing(v) else v for v in raw])
    return rows


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
