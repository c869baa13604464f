from __future__ import annotations

import os
from dataclasses import dataclass

from trade_reconciler.config.paths import default_db_path

# Upper bound on records written per committed batch.
MAX_BATCH_SIZE = 500
DEFAULT_BATCH_SIZE = 450
DEFAULT_MAX_REPORTED_ERRORS = 10


def _env_int(name: str, default: int, *, minimum: int, maximum: int | None = None) -> int:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'.") from exc
    if value < minimum or (maximum is not None and value > maximum):
        upper = f" and {maximum}" if maximum is not None else ""
        raise ValueError(f"{name} must be between {minimum}{upper}, got {value}.")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: str
    database_url: str
    import_batch_size: int
    max_reported_errors: int
    log_level: str


def get_settings() -> Settings:
    db_default = f"sqlite:///{default_db_path().as_posix()}"
    return Settings(
        app_env=os.getenv("APP_ENV", "development"),
        database_url=os.getenv("DATABASE_URL", db_default),
        import_batch_size=_env_int(
            "IMPORT_BATCH_SIZE", DEFAULT_BATCH_SIZE, minimum=1, maximum=MAX_BATCH_SIZE
        ),
        max_reported_errors=_env_int(
            "IMPORT_MAX_REPORTED_ERRORS", DEFAULT_MAX_REPORTED_ERRORS, minimum=0
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
