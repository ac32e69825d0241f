# Shared pytest fixtures
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from campaign_import.db.memory_store import MemoryStore, StoredSubmission
from campaign_import.logging.init import reset_logging
from campaign_import.models.product import ColumnRole, ProductType, RecordFamily
from campaign_import.registry import (
    ProductSpec,
    ProgressRule,
    SchemaRegistry,
    StorageBinding,
    default_registry,
)


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """category: all
sheet_aliases:
  ReviewTypeA: kakaomap
max_displayed_errors: 5
lookup_timeout_sec: 5
storage_timeout_sec: 5
timezone: UTC
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def registry() -> SchemaRegistry:
    return default_registry()


@pytest.fixture()
def review_registry() -> SchemaRegistry:
    """Single review product routed from sheet 'ReviewTypeA' with prefix RA."""
    binding = StorageBinding(
        storage_key="review_a_items",
        business_key_prefix="RA",
        submission_table="review_a_submissions",
        columns={
            ColumnRole.CONTENT_TEXT: "script_text",
            ColumnRole.PRIMARY_DATE: "review_registered_date",
            ColumnRole.SECONDARY_DATE: "receipt_date",
            ColumnRole.STATUS: "status",
            ColumnRole.LINK: "review_link",
            ColumnRole.EXTERNAL_ID: "review_id",
        },
        order_column="upload_order",
        progress_rule=ProgressRule(),
    )
    products = {
        ProductType.KAKAOMAP: ProductSpec(ProductType.KAKAOMAP, "Review A", RecordFamily.REVIEW, binding)
    }
    return SchemaRegistry(products, {"ReviewTypeA": ProductType.KAKAOMAP})


@pytest.fixture()
def acme_store() -> MemoryStore:
    return MemoryStore([
        StoredSubmission("sub-1", "RA-2025-0001", "Acme", target_count=10),
    ])


@pytest.fixture()
def review_row() -> Callable[..., list[Any]]:
    def _make(
        number: str = "RA-2025-0001",
        company: str = "Acme",
        text: str = "great coffee",
        registered: Any = "2025-01-10",
        receipt: Any = "2025-01-09",
        status: str = "",
        link: str = "",
        review_id: str = "",
    ) -> list[Any]:
        return [number, company, text, registered, receipt, status, link, review_id]
    return _make


@pytest.fixture()
def write_workbook(temp_workdir: Path) -> Callable[..., Path]:
    """Write {sheet_name: rows (header included)} to data/<name> with openpyxl."""
    def _write(sheets: dict[str, list[list[Any]]], name: str = "upload.xlsx") -> Path:
        path = temp_workdir / "data" / name
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for sheet_name, rows in sheets.items():
                pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        return path
    return _write
