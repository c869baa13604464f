from __future__ import annotations

import json
import logging

import pytest

from trade_reconciler.cli import build_parser, main
from trade_reconciler.config.paths import data_dir, default_db_path
from trade_reconciler.config.settings import DEFAULT_BATCH_SIZE, get_settings
from trade_reconciler.utils.logging import _resolve_level
from trade_reconciler.utils.money import round_money, round_quantity

from conftest import WEALTHSIMPLE_HEADER


def test_settings_defaults(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TRADE_RECONCILER_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("IMPORT_BATCH_SIZE", raising=False)
    monkeypatch.delenv("IMPORT_MAX_REPORTED_ERRORS", raising=False)

    settings = get_settings()

    assert settings.import_batch_size == DEFAULT_BATCH_SIZE
    assert settings.max_reported_errors == 10
    assert data_dir() == tmp_path
    assert settings.database_url == f"sqlite:///{default_db_path().as_posix()}"


@pytest.mark.parametrize("value", ["0", "501", "many"])
def test_batch_size_must_stay_within_write_limit(monkeypatch, value) -> None:
    monkeypatch.setenv("IMPORT_BATCH_SIZE", value)
    with pytest.raises(ValueError, match="IMPORT_BATCH_SIZE"):
        get_settings()


def test_money_rounding_is_half_up():
    assert round_money(2.675) == 2.68
    assert round_money("-0.005") == -0.01
    assert round_quantity(0.1 + 0.2) == 0.3


def test_parser_requires_account_for_imports():
    parser = build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["import-csv", "trades.csv"])


def test_cli_imports_then_exports(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    db_url = f"sqlite:///{(tmp_path / 'cli.sqlite').as_posix()}"
    csv_path = tmp_path / "activity.csv"
    csv_path.write_text(
        "\n".join(
            [
                WEALTHSIMPLE_HEADER,
                "2025-01-02,2025-01-03,TFSA,Trade,BUY,LONG,AAPL,,Apple Inc,USD,5,10.00,0,-50",
                "2025-01-09,2025-01-10,TFSA,Trade,SELL,LONG,AAPL,,Apple Inc,USD,-5,11.00,0,55",
            ]
        ),
        encoding="utf-8",
    )
    out_path = tmp_path / "trades.json"

    assert main(["--database-url", db_url, "import-csv", str(csv_path), "--account", "tfsa"]) == 0
    assert "Imported 1 trades, 0 failed rows." in capsys.readouterr().out

    assert main(["--database-url", db_url, "export-json", "--account", "tfsa", "--out", str(out_path)]) == 0
    exported = json.loads(out_path.read_text(encoding="utf-8"))
    assert [(item["symbol"], item["pnl"]) for item in exported] == [("AAPL", 5.0)]


def test_cli_reports_file_errors(tmp_path, capsys):
    db_url = f"sqlite:///{(tmp_path / 'cli.sqlite').as_posix()}"
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")

    assert main(["--database-url", db_url, "import-csv", str(empty), "--account", "a"]) == 1
    assert "CSV file is empty or has no valid rows" in capsys.readouterr().err


def test_log_level_names_resolve_case_insensitively(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    assert _resolve_level(None) == logging.DEBUG
    assert _resolve_level(logging.WARNING) == logging.WARNING
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        _resolve_level("chatty")
