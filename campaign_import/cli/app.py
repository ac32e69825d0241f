from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from ..db.memory_store import MemoryStore
from ..db.postgres_store import PostgresStore
from ..errors import ImportPipelineError
from ..excel.reader import read_workbook
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..models.config_models import ImportConfig
from ..models.deploy_result import DeployResult
from ..models.sheet_data import ValidationResult
from ..registry import SchemaRegistry, allowed_products, default_registry
from ..services.orchestrator import deploy_validated, validate_workbook
from ..services.summary import displayed_errors, render_deploy_summary, render_validation_summary

"""CLI entrypoint.

    python -m campaign_import.cli FILE [--category C] [--config P] [--confirm]
                                       [--debug] [--inspect-data] [--json]

Without --confirm the workbook is only validated (parse + submission lookup)
and the result reported. With --confirm valid records are deployed.

Exit codes:
    0  every row valid (and deployed when --confirm)
    2  partial failure: invalid rows or failed upserts
    1  fatal: config, unreadable workbook, database unreachable, lookup
       failure, aborted deployment
"""

__all__ = [
    "EXIT_SUCCESS_ALL",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_FATAL",
    "main",
]

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

_SUMMARY_PREFIX = "SUMMARY "


def _resolve_dsn(cfg: ImportConfig) -> str:
    """Connection string, environment first.

    優先順位:
        1. DATABASE_URL / PGDSN (.env は main() 冒頭で override 読み込み済み)
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. config の database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a psycopg2 cursor; the connection is closed on exit."""
    conn = psycopg2.connect(_resolve_dsn(cfg))
    # BEGIN/COMMIT は store 側で明示発行
    conn.autocommit = True
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


def _mock_store() -> MemoryStore:
    """Store used when the database is disabled (DISABLE_DB_CONNECT=1)."""
    return MemoryStore()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv, its values winning over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="campaign_import",
        description="Campaign daily-record workbook -> PostgreSQL bulk import",
    )
    p.add_argument("file", type=Path, help="Workbook (.xlsx) to import")
    p.add_argument("--category", help="Batch category (all|review|blog|cafe|place); overrides config")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--confirm", action="store_true", help="Deploy valid records after validation")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet routing & first rows then exit")
    p.add_argument("--json", action="store_true", help="Print the result as one JSON line")
    return p.parse_args(argv)


def _inspect_data(path: Path, registry: SchemaRegistry) -> int:
    try:
        raw = read_workbook(path)
    except ImportPipelineError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {path.name}")
    for sheet_name, rows in raw.items():
        product_type = registry.resolve_product_type(sheet_name)
        routed = product_type.value if product_type else "<unknown>"
        header = rows[0] if rows else []
        print(f"  SHEET: {sheet_name} product={routed} rows={max(len(rows) - 1, 0)} cols={header}")
        sample = [
            [v.isoformat() if hasattr(v, "isoformat") else v for v in r] for r in rows[1:4]
        ]
        print("    sample_rows=", sample)
    return EXIT_SUCCESS_ALL


def _report_validation(logger: logging.Logger, result: ValidationResult, limit: int) -> None:
    for sheet in result.sheets:
        logger.info(
            "sheet=%s product=%s valid=%d invalid=%d",
            sheet.sheet_name, sheet.product_type.value, sheet.valid_count, sheet.invalid_count,
        )
    errors = [
        f"{s.sheet_name} row {r.row}: {r.error_message}"
        for s in result.sheets
        for r in s.records
        if not r.is_valid
    ]
    for line in displayed_errors(errors, limit):
        logger.warning(line)
    log_summary(render_validation_summary(result)[len(_SUMMARY_PREFIX):])


def _report_deploy(logger: logging.Logger, result: DeployResult, limit: int) -> None:
    if result.success:
        logger.info(result.message)
    else:
        logger.error(result.message)
    for line in displayed_errors(result.errors, limit):
        logger.warning(line)
    log_summary(render_deploy_summary(result)[len(_SUMMARY_PREFIX):])


def _exit_code(validation: ValidationResult, deployed: DeployResult | None) -> int:
    if deployed is not None and deployed.batch_error is not None:
        return EXIT_FATAL
    if validation.invalid_records > 0:
        return EXIT_PARTIAL_FAILURE
    if deployed is not None and deployed.failed_count > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _run(
    args: argparse.Namespace,
    cfg: ImportConfig,
    registry: SchemaRegistry,
    category: str,
    store: Any,
    mode: str,
) -> int:
    logger = logging.getLogger("campaign_import")
    error_log = ErrorLogBuffer(tz=ZoneInfo(cfg.timezone))
    path: Path = args.file
    logger.info("mode=%s file=%s category=%s", mode, path.name, category)

    deployed: DeployResult | None = None
    try:
        validation = validate_workbook(
            path, allowed_products(category), registry, store, error_log=error_log
        )
        _report_validation(logger, validation, cfg.max_displayed_errors)
        if args.confirm:
            deployed = deploy_validated(
                validation, store, registry, file_name=path.name, error_log=error_log
            )
            _report_deploy(logger, deployed, cfg.max_displayed_errors)
        else:
            logger.info("validation only; re-run with --confirm to deploy")
    except ImportPipelineError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    finally:
        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"error log: {log_path}")

    if args.json:
        payload = {
            "validation": validation.to_dict(),
            "deploy": deployed.to_dict() if deployed is not None else None,
        }
        print(json.dumps(payload, ensure_ascii=False, default=str))
    return _exit_code(validation, deployed)


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む ([] はテストからの明示呼び出し)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    category = args.category or cfg.category
    try:
        allowed_products(category)
        registry = default_registry(cfg.sheet_aliases)
    except ValueError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not args.file.exists():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(args.file, registry)

    # DISABLE_DB_CONNECT=1 でテスト等から DB 接続を完全に無効化
    disable_db = os.getenv("DISABLE_DB_CONNECT") == "1"
    with ExitStack() as stack:
        store: Any = None
        mode = "mock"
        if disable_db:
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        else:
            try:
                cur = stack.enter_context(_db_connection(cfg))
                store = PostgresStore(
                    cur,
                    registry,
                    lookup_timeout_sec=cfg.lookup_timeout_sec,
                    storage_timeout_sec=cfg.storage_timeout_sec,
                )
                mode = "live"
            except psycopg2.Error as e:
                logger.error(f"DB connection failed: {str(e).strip()}")
                return EXIT_FATAL
        if store is None:
            store = _mock_store()
        return _run(args, cfg, registry, category, store, mode)
