from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

Every invalid row and every failed upsert is written as one ErrorRecord.
row=-1 is the sentinel for batch-level errors where no row applies.
"""

__all__ = [
    "ErrorRecord",
    "PARSE_ERROR",
    "REFERENCE_ERROR",
    "DEPLOY_ERROR",
    "BATCH_ERROR",
]

PARSE_ERROR = "PARSE_ERROR"
REFERENCE_ERROR = "REFERENCE_ERROR"
DEPLOY_ERROR = "DEPLOY_ERROR"
BATCH_ERROR = "BATCH_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Uploaded workbook name
        sheet: Sheet name, or "<BATCH>" for batch-level errors
        row: 1-based sheet row, -1 when unknown
        error_type: Classification in UPPER_SNAKE_CASE
        message: Human readable reason
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
