from __future__ import annotations

from enum import Enum

"""Product type, record family and column role enums.

ProductType is the closed set of campaign categories a sheet can be routed to.
RecordFamily describes the payload shape shared by several product types and
drives the parse/column-mapping dispatch tables. ColumnRole names the meaning
of a sheet column independently of its position or storage column name.
"""

__all__ = [
    "ProductType",
    "RecordFamily",
    "ColumnRole",
    "RecordStatus",
    "parse_status",
]


class ProductType(Enum):
    """Campaign product types accepted by the bulk import."""
    KAKAOMAP = "kakaomap"
    RECEIPT = "receipt"
    BLOG_REVIEWER = "blog_reviewer"
    BLOG_VIDEO = "blog_video"
    BLOG_AUTOMATION = "blog_automation"
    CAFE = "cafe"
    COMMUNITY = "community"
    PLACE = "place"  # legacy count-based daily records


class RecordFamily(Enum):
    REVIEW = "review"
    DISTRIBUTION = "distribution"
    COMMUNITY_POST = "community_post"
    DAILY_COUNT = "daily_count"


class ColumnRole(Enum):
    SUBMISSION_NUMBER = "submission_number"
    COMPANY_NAME = "company_name"
    CONTENT_TEXT = "content_text"
    TITLE = "title"
    PRIMARY_DATE = "primary_date"
    SECONDARY_DATE = "secondary_date"
    STATUS = "status"
    LINK = "link"
    EXTERNAL_ID = "external_id"
    CHANNEL_NAME = "channel_name"
    COMPLETED_COUNT = "completed_count"
    NOTES = "notes"


class RecordStatus(Enum):
    """Review state of a content record.

    PENDING is the default when the sheet leaves the status cell empty.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    REJECTED = "rejected"


# シート入力ラベル (韓国語 + 正規値) -> RecordStatus
_STATUS_LABELS: dict[str, RecordStatus] = {
    "대기": RecordStatus.PENDING,
    "승인됨": RecordStatus.APPROVED,
    "수정요청": RecordStatus.REVISION_REQUESTED,
    "반려": RecordStatus.REJECTED,
}
_STATUS_LABELS.update({s.value: s for s in RecordStatus})


def parse_status(label: str) -> RecordStatus | None:
    """Map a status cell to RecordStatus.

    Empty text maps to PENDING. Unknown labels return None; the parser stores
    them as PENDING.
    """
    text = label.strip()
    if not text:
        return RecordStatus.PENDING
    return _STATUS_LABELS.get(text)
