from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the bulk import.

Built by campaign_import.config.loader from config/import.yml.
"""

__all__ = [
    "DatabaseConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one import run."""
    category: str  # all | review | blog | cafe | place
    sheet_aliases: dict[str, str] = field(default_factory=dict)  # 追加シート名 -> product type
    max_displayed_errors: int = 5
    lookup_timeout_sec: float = 10.0
    storage_timeout_sec: float = 10.0
    timezone: str = "UTC"  # IANA name, error log file stamp
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
