from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
PACKAGE_LOGGER = "trade_reconciler"
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")

_configured_level: int | None = None


def _resolve_level(level: str | int | None) -> int:
    raw: str | int = level if level is not None else os.getenv("LOG_LEVEL", "INFO")
    if isinstance(raw, int):
        return raw
    name = raw.strip().upper() or "INFO"
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        raise ValueError(f"LOG_LEVEL must be a logging level name, got '{raw}'.")
    return resolved


def configure_logging(level: str | int | None = None, *, force: bool = False) -> int:
    """Install the root handler once; ``force`` re-applies a new level (CLI ``--verbose``)."""
    global _configured_level
    if _configured_level is not None and not force:
        return _configured_level

    resolved = _resolve_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=force)
    logging.getLogger(PACKAGE_LOGGER).setLevel(resolved)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    _configured_level = resolved
    return resolved


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
