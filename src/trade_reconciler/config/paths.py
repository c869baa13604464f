"""Path helpers for local-first storage."""

from __future__ import annotations

import os
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[3]
DEFAULT_DATA_DIR = ROOT_DIR / "data"


def data_dir() -> Path:
    override = os.getenv("TRADE_RECONCILER_DATA_DIR")
    return Path(override).expanduser() if override else DEFAULT_DATA_DIR


def imports_dir() -> Path:
    return data_dir() / "imports"


def exports_dir() -> Path:
    return data_dir() / "exports"


def ensure_data_dirs() -> None:
    for directory in (data_dir(), imports_dir(), exports_dir()):
        directory.mkdir(parents=True, exist_ok=True)


def default_db_path() -> Path:
    return data_dir() / "trade_reconciler.sqlite"
