from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .product import ColumnRole, ProductType, RecordFamily, RecordStatus

"""ParsedRecord and its per-family payload variants.

Each payload variant carries only the fields of its own family. The common
surface is `primary_date` (the upsert date) and `fields()` which yields the
mutable values keyed by ColumnRole; the storage binding maps roles to columns.
"""

__all__ = [
    "ReviewContent",
    "DistributionContent",
    "CommunityPost",
    "DailyCount",
    "Payload",
    "ParsedRecord",
]


@dataclass(frozen=True)
class ReviewContent:
    """Review manuscript row (kakaomap / receipt review)."""
    script_text: str
    registered_date: str  # レビュー登録日 (upsert key)
    receipt_date: str
    status: RecordStatus = RecordStatus.PENDING
    link: str = ""
    external_id: str = ""

    family: ClassVar[RecordFamily] = RecordFamily.REVIEW

    @property
    def primary_date(self) -> str:
        return self.registered_date

    def fields(self) -> dict[ColumnRole, Any]:
        return {
            ColumnRole.CONTENT_TEXT: self.script_text,
            ColumnRole.PRIMARY_DATE: self.registered_date,
            ColumnRole.SECONDARY_DATE: self.receipt_date or None,
            ColumnRole.STATUS: self.status.value,
            ColumnRole.LINK: self.link or None,
            ColumnRole.EXTERNAL_ID: self.external_id or None,
        }


@dataclass(frozen=True)
class DistributionContent:
    """Blog distribution post."""
    title: str
    published_date: str
    status: RecordStatus = RecordStatus.PENDING
    link: str = ""
    external_id: str = ""

    family: ClassVar[RecordFamily] = RecordFamily.DISTRIBUTION

    @property
    def primary_date(self) -> str:
        return self.published_date

    def fields(self) -> dict[ColumnRole, Any]:
        return {
            ColumnRole.TITLE: self.title,
            ColumnRole.PRIMARY_DATE: self.published_date,
            ColumnRole.STATUS: self.status.value,
            ColumnRole.LINK: self.link or None,
            ColumnRole.EXTERNAL_ID: self.external_id or None,
        }


@dataclass(frozen=True)
class CommunityPost:
    """Cafe / community marketing post."""
    title: str
    published_date: str
    status: RecordStatus = RecordStatus.PENDING
    link: str = ""
    writer_id: str = ""
    channel_name: str = ""  # カフェ名

    family: ClassVar[RecordFamily] = RecordFamily.COMMUNITY_POST

    @property
    def primary_date(self) -> str:
        return self.published_date

    def fields(self) -> dict[ColumnRole, Any]:
        return {
            ColumnRole.TITLE: self.title,
            ColumnRole.PRIMARY_DATE: self.published_date,
            ColumnRole.STATUS: self.status.value,
            ColumnRole.LINK: self.link or None,
            ColumnRole.EXTERNAL_ID: self.writer_id or None,
            ColumnRole.CHANNEL_NAME: self.channel_name or None,
        }


@dataclass(frozen=True)
class DailyCount:
    """Legacy count-based daily record."""
    record_date: str
    completed_count: int | None
    notes: str = ""

    family: ClassVar[RecordFamily] = RecordFamily.DAILY_COUNT

    @property
    def primary_date(self) -> str:
        return self.record_date

    def fields(self) -> dict[ColumnRole, Any]:
        return {
            ColumnRole.PRIMARY_DATE: self.record_date,
            ColumnRole.COMPLETED_COUNT: self.completed_count,
            ColumnRole.NOTES: self.notes or None,
        }


Payload = Union[ReviewContent, DistributionContent, CommunityPost, DailyCount]


@dataclass(frozen=True)
class ParsedRecord:
    """One data row after parsing (and optionally resolution).

    `row` is the 1-based sheet row number shown to users (header is row 1).
    `error_message` is set iff `is_valid` is False. `submission_id` stays None
    until the reference resolver matches the submission number.
    """
    row: int
    submission_number: str
    company_name: str
    product_type: ProductType
    payload: Payload
    is_valid: bool = True
    error_message: str | None = None
    submission_id: str | None = None

    @property
    def date(self) -> str:
        return self.payload.primary_date

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "row": self.row,
            "submission_number": self.submission_number,
            "company_name": self.company_name,
            "product_type": self.product_type.value,
            "date": self.date,
            "is_valid": self.is_valid,
            "error_message": self.error_message,
            "submission_id": self.submission_id,
        }
        for role, value in self.payload.fields().items():
            data.setdefault(role.value, value)
        return data
