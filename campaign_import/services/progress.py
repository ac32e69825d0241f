from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

- DeployProgressTracker: one bar over all records being deployed
- SheetProgressIndicator: one line per sheet while parsing

Both stay silent when stdout is not a TTY so CI logs carry no ANSI noise.
"""

__all__ = [
    "DeployProgressTracker",
    "is_tty_enabled",
    "SheetProgressIndicator",
]


def is_tty_enabled() -> bool:
    """Return True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class DeployProgressTracker:
    """tqdm bar over the records of a deployment.

    The description shows the product group currently being written and the
    postfix carries running success/failed counts.
    """

    def __init__(self, total_records: int, *, description: str = "Deploying records") -> None:
        self.total_records = total_records
        self.description = description
        self.succeeded = 0
        self.failed = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_group(self, group_name: str) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({group_name})")

    def advance(self, success: bool = True) -> None:
        if success:
            self.succeeded += 1
        else:
            self.failed += 1
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(success=self.succeeded, failed=self.failed)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> DeployProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class SheetProgressIndicator:
    """Simple per-sheet indicator used while parsing a workbook.

    Parsing a sheet is fast, so a plain line per sheet is enough.
    """

    def __init__(self, file_name: str, total_sheets: int) -> None:
        self.file_name = file_name
        self.total_sheets = total_sheets
        self.current_sheet = 0
        self.enabled = is_tty_enabled()

    def start_sheet(self, sheet_name: str) -> None:
        self.current_sheet += 1
        if self.enabled:
            print(f"  Sheet {self.current_sheet}/{self.total_sheets}: {sheet_name}", end="", flush=True)

    def finish_sheet(self, success: bool = True, rows_processed: int = 0) -> None:
        if self.enabled:
            status = "✓" if success else "✗"
            if rows_processed > 0:
                print(f" - {rows_processed} rows {status}")
            else:
                print(f" {status}")
