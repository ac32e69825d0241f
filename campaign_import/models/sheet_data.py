from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .product import ProductType
from .records import ParsedRecord

"""SheetData and ValidationResult models.

SheetData is the parse result of one workbook sheet. Its valid/invalid counts
are always derived from the records (see `SheetData.of`), never adjusted in
place, so `valid_count + invalid_count == len(records)` holds after every
stage that can change validity.
"""

__all__ = [
    "SheetData",
    "ValidationResult",
]


@dataclass(frozen=True)
class SheetData:
    """Parsed records of a single sheet routed to one product type."""
    sheet_name: str
    product_type: ProductType
    product_name: str
    records: list[ParsedRecord]
    valid_count: int
    invalid_count: int

    @classmethod
    def of(
        cls,
        sheet_name: str,
        product_type: ProductType,
        product_name: str,
        records: list[ParsedRecord],
    ) -> SheetData:
        valid = sum(1 for r in records if r.is_valid)
        return cls(
            sheet_name=sheet_name,
            product_type=product_type,
            product_name=product_name,
            records=list(records),
            valid_count=valid,
            invalid_count=len(records) - valid,
        )

    def with_records(self, records: list[ParsedRecord]) -> SheetData:
        """Return a copy holding `records` with counts recomputed."""
        return SheetData.of(self.sheet_name, self.product_type, self.product_name, records)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet_name": self.sheet_name,
            "product_type": self.product_type.value,
            "product_name": self.product_name,
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True)
class ValidationResult:
    """Whole-batch validation outcome shown to the user before deployment."""
    sheets: list[SheetData]
    total_records: int
    valid_records: int
    invalid_records: int
    skipped_sheets: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "valid_records": self.valid_records,
            "invalid_records": self.invalid_records,
            "skipped_sheets": list(self.skipped_sheets),
            "sheets": [s.to_dict() for s in self.sheets],
        }
