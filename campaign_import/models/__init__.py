"""Domain models for the campaign daily-record bulk import."""

from .config_models import DatabaseConfig, ImportConfig
from .deploy_result import DeployDetails, DeployResult, GroupStat, ProgressDebugInfo
from .error_record import ErrorRecord
from .product import ColumnRole, ProductType, RecordFamily, RecordStatus
from .records import CommunityPost, DailyCount, DistributionContent, ParsedRecord, ReviewContent
from .sheet_data import SheetData, ValidationResult

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    # Product / schema enums
    "ColumnRole",
    "ProductType",
    "RecordFamily",
    "RecordStatus",
    # Parsed records
    "ReviewContent",
    "DistributionContent",
    "CommunityPost",
    "DailyCount",
    "ParsedRecord",
    "SheetData",
    "ValidationResult",
    # Deployment
    "DeployDetails",
    "DeployResult",
    "GroupStat",
    "ProgressDebugInfo",
    "ErrorRecord",
]
