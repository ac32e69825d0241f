from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Error log buffering (JSON Lines).

- fixed keys: timestamp, file, sheet, row, error_type, message
- one file per run: `logs/errors-YYYYMMDD-HHMMSS.log`, stamped in the configured
  timezone (UTC by default), created on the first flush that has something
  to write. Record timestamps stay UTC.
- records are buffered and appended in one go on flush()
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "LOGS_DIR",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer of ErrorRecords; flush() writes JSON Lines.

    シリアル実行前提 (thread safety 不要).
    """

    def __init__(self, logs_dir: Path | None = None, tz: tzinfo = UTC) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._tz = tz

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(self._tz).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file.

        Returns the file path, or None when nothing was buffered (no file is
        created in that case).
        """
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp


