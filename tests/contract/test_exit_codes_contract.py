from __future__ import annotations

from pathlib import Path

import pytest

from campaign_import.cli import main as cli_main
from campaign_import.db.memory_store import MemoryStore, StoredSubmission

from tests.helpers import REVIEW_HEADER, UnavailableStore

"""Exit code contract: 0 all success, 2 partial failure, 1 fatal."""


@pytest.fixture()
def mock_mode(monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")


def _use_store(monkeypatch, store: MemoryStore) -> None:
    monkeypatch.setattr("campaign_import.cli.app._mock_store", lambda: store)


def _submissions():
    return [StoredSubmission("sub-1", "KM-2025-0001", "Acme", target_count=2)]


def test_exit_code_fatal_startup(temp_workdir: Path, mock_mode, capsys):
    # config/import.yml 無し → exit 1
    code = cli_main(["data/upload.xlsx"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, write_workbook, mock_mode, monkeypatch, review_row, capsys):
    _use_store(monkeypatch, MemoryStore(_submissions()))
    path = write_workbook({"K맵리뷰": [REVIEW_HEADER, review_row(number="KM-2025-0001")]})

    code = cli_main([str(path), "--confirm"])

    assert code == 0
    assert "SUMMARY success=1 failed=0" in capsys.readouterr().out


def test_exit_code_partial_failure(write_config, write_workbook, mock_mode, monkeypatch, review_row):
    _use_store(monkeypatch, MemoryStore(_submissions()))
    path = write_workbook({
        "K맵리뷰": [
            REVIEW_HEADER,
            review_row(number="KM-2025-0001"),
            review_row(number="KM-2025-0001", registered="2025/13/45"),
        ],
    })

    assert cli_main([str(path), "--confirm"]) == 2


def test_exit_code_storage_unavailable_is_fatal(
    write_config, write_workbook, mock_mode, monkeypatch, review_row, capsys
):
    _use_store(monkeypatch, UnavailableStore(_submissions(), "kakaomap_content_items"))
    path = write_workbook({"K맵리뷰": [REVIEW_HEADER, review_row(number="KM-2025-0001")]})

    code = cli_main([str(path), "--confirm"])

    assert code == 1
    assert "deployment aborted" in capsys.readouterr().out
